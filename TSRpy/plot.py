import typer
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

app = typer.Typer(help="Plotting utilities for TSRpy")

# tab column -> axis label
PANELS = {
    'tsrReads': 'TSR depth (reads)',
    'maxTSSReads': 'max TSS depth (reads)',
    'stdevAvgTSS': 'stdev of TSS position (bp)',
    'maxTSS-avgTSS': 'maxTSS - avgTSS (bp)',
}


def plot_tsr_stats(tab: pd.DataFrame, output: str):
    fig, axes = plt.subplots(2, 2, figsize=(9, 7))
    for ax, (col, label) in zip(axes.flat, PANELS.items()):
        for strand, color in [('+', 'tab:red'), ('-', 'tab:blue')]:
            values = tab.loc[tab['strand'] == strand, col]
            if values.empty:
                continue
            sns.histplot(values, bins=30, color=color, alpha=0.5, label=strand, ax=ax)
        ax.set_xlabel(label)
        ax.legend(title="strand")
    fig.suptitle(f"TSR statistics (n={len(tab)})")
    fig.tight_layout()
    fig.savefig(output, dpi=150)
    plt.close(fig)


@app.command()
def stats(
    tsr_table: str = typer.Option(..., "-i", "--input", help="Input TSR table (-TSR.tab output of tsrpy call)"),
    output: str = typer.Option("tsr_stats.png", "-o", "--output", help="Output image file (png/pdf)")
):
    """
    Plot distributions of TSR depth, max TSS depth, TSS spread and maxTSS offset per strand.
    """
    typer.echo("[1/3] Reading input table...")
    tab = pd.read_csv(tsr_table, sep='\t')
    missing = [c for c in list(PANELS) + ['strand'] if c not in tab.columns]
    if missing:
        typer.echo(f"[ERROR] TSR table is missing columns: {', '.join(missing)}")
        raise typer.Exit(1)
    typer.echo(f"[2/3] Plotting {len(tab)} TSRs...")
    plot_tsr_stats(tab, output)
    typer.echo(f"[3/3] TSR statistics plot saved to {output}")


if __name__ == "__main__":
    app()
