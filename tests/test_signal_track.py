import pickle

import numpy as np
import pandas as pd
import pytest

from conftest import make_fragments
from TSRpy.signal_track import OutOfRangeSignal, build_signal_track, fill_gaps


def test_forward_fragments_collapse_on_start():
    fragments = pd.DataFrame({'start': [15, 10, 10, 15, 10], 'end': [40, 30, 50, 35, 20]})
    fragments['length'] = fragments['end'] - fragments['start']

    signal = build_signal_track(fragments, '+')

    assert signal['pos'].tolist() == [10, 15]
    assert signal['count'].tolist() == [3, 2]
    assert signal['length_sum'].tolist() == [20 + 40 + 10, 25 + 20]


def test_reverse_fragments_use_last_base():
    fragments = pd.DataFrame({'start': [0, 5, 20], 'end': [30, 30, 45]})
    fragments['length'] = fragments['end'] - fragments['start']

    signal = build_signal_track(fragments, '-')

    assert signal['pos'].tolist() == [29, 44]
    assert signal['count'].tolist() == [2, 1]
    assert signal['length_sum'].tolist() == [55, 25]


def test_empty_partition_gives_empty_signal():
    signal = build_signal_track(make_fragments([]), '+')
    assert signal.empty
    assert list(signal.columns) == ['pos', 'count', 'length_sum']


def test_fill_gaps_zero_fills_whole_chromosome():
    signal = build_signal_track(make_fragments([2, 2, 7]), '+')

    track = fill_gaps(signal, 'chr1', '+', 10)

    assert len(track) == 10
    assert track.count.dtype == np.int32
    assert track.length_sum.dtype == np.int64
    np.testing.assert_array_equal(track.count, [0, 0, 2, 0, 0, 0, 0, 1, 0, 0])
    np.testing.assert_array_equal(track.length_sum, [0, 0, 60, 0, 0, 0, 0, 30, 0, 0])


def test_fill_gaps_rejects_signal_beyond_chromosome():
    signal = build_signal_track(make_fragments([3, 12]), '+')

    with pytest.raises(OutOfRangeSignal) as excinfo:
        fill_gaps(signal, 'chr1', '+', 10)

    assert excinfo.value.positions == [12]
    assert 'chr1' in str(excinfo.value)


def test_fill_gaps_can_drop_out_of_range(caplog):
    signal = build_signal_track(make_fragments([3, 12]), '+')

    track = fill_gaps(signal, 'chr1', '+', 10, on_out_of_range='drop')

    assert track.count.sum() == 1
    assert "Dropping 1 TSS positions" in caplog.text


def test_out_of_range_error_survives_pickling():
    error = OutOfRangeSignal('chr2', '-', [600, 601], 500)

    restored = pickle.loads(pickle.dumps(error))

    assert isinstance(restored, OutOfRangeSignal)
    assert restored.positions == [600, 601]
    assert restored.chrom_length == 500
    assert str(restored) == str(error)
