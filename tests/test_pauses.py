"""Tests for pause sampling."""

import pytest

from vmlcompose.model import FixedPause, GaussianPause
from vmlcompose.pauses import make_rng, sample_pause_seconds, sample_pauses
from vmlcompose.resolver import resolve_markup

PAUSES = (
    '<vml id="x">{voiceover}'
    '<scene id="a">'
    '<cue id="c"><voice>One.</voice><pause mean="1" std="0.3"/><voice>Two.</voice>'
    '<pause seconds="0.25"/></cue>'
    '<pause seconds="2"/>'
    '<pause mean="0.5" std="0.1"/>'
    '</scene>'
    '</vml>'
)


class TestSamplePauseSeconds:
    def test_fixed(self):
        assert sample_pause_seconds(FixedPause(seconds=1.5), make_rng(0)) == 1.5

    def test_zero_std_returns_mean(self):
        assert sample_pause_seconds(GaussianPause(mean=0.8, std=0), make_rng(0)) == 0.8

    def test_clipped_to_bounds(self):
        rng = make_rng(1)
        values = [
            sample_pause_seconds(GaussianPause(mean=1.0, std=5.0, min=0.5, max=1.5), rng)
            for _ in range(200)
        ]
        assert min(values) >= 0.5
        assert max(values) <= 1.5
        assert 0.5 in values and 1.5 in values

    def test_never_negative(self):
        rng = make_rng(2)
        values = [sample_pause_seconds(GaussianPause(mean=0.0, std=1.0), rng) for _ in range(100)]
        assert min(values) == 0.0

    def test_same_seed_same_draws(self):
        pause = GaussianPause(mean=1.0, std=0.3)
        first = [sample_pause_seconds(pause, make_rng(42)) for _ in range(3)]
        second = [sample_pause_seconds(pause, make_rng(42)) for _ in range(3)]
        assert first == second


class TestSamplePauses:
    def test_keys(self):
        sampled = sample_pauses(resolve_markup(PAUSES.format(voiceover="")), seed=3)
        assert list(sampled) == ["c", "a/pause-0", "a/pause-1"]
        assert sampled["a/pause-0"] == 2.0

    def test_cue_pauses_are_summed(self):
        comp = resolve_markup(PAUSES.format(voiceover=""))
        sampled = sample_pauses(comp, seed=3)
        rng = make_rng(3)
        expected = sample_pause_seconds(GaussianPause(mean=1.0, std=0.3), rng) + 0.25
        assert sampled["c"] == pytest.approx(expected)

    def test_voiceover_seed_is_default(self):
        comp = resolve_markup(PAUSES.format(voiceover='<voiceover seed="9"/>'))
        assert sample_pauses(comp) == sample_pauses(comp, seed=9)

    def test_explicit_seed_overrides_voiceover(self):
        comp = resolve_markup(PAUSES.format(voiceover='<voiceover seed="9"/>'))
        assert sample_pauses(comp, seed=10) != sample_pauses(comp, seed=9)

    def test_no_pauses(self):
        comp = resolve_markup('<vml id="x"><scene id="a"><cue id="c"/></scene></vml>')
        assert sample_pauses(comp, seed=0) == {"c": 0}
