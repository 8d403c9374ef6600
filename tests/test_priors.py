"""Tests for the prior vector builder."""

import warnings

import numpy as np
import pytest

from mftr.data.schema import TeamPrior
from mftr.errors import MissingPriorWarning
from mftr.models.priors import PriorVector, PriorVectorBuilder

TEAMS = ["A", "B", "C", "D"]


class TestStandardization:
    def test_single_feature_is_zscored(self):
        """With one feature weighted, the prior is that feature's population z-score."""
        priors = [TeamPrior(t, talent_score=v) for t, v in zip(TEAMS, [10.0, 20.0, 30.0, 40.0])]
        prior = PriorVectorBuilder(feature_weights={"talent_score": 1.0}).build(TEAMS, priors)

        assert prior.values.mean() == pytest.approx(0.0, abs=1e-12)
        assert prior.values.std() == pytest.approx(1.0)
        assert prior.values[3] > prior.values[0]
        assert prior.feature_stats["talent_score"][0] == pytest.approx(25.0)

    def test_equal_weights_by_default(self):
        """Default blend is the mean of the three feature z-scores."""
        priors = [
            TeamPrior(t, talent_score=v, returning_prod_off=v, returning_prod_def=-v)
            for t, v in zip(TEAMS, [1.0, 2.0, 3.0, 4.0])
        ]
        prior = PriorVectorBuilder().build(TEAMS, priors)

        z = (np.array([1.0, 2.0, 3.0, 4.0]) - 2.5) / np.std([1.0, 2.0, 3.0, 4.0])
        np.testing.assert_allclose(prior.values, (z + z - z) / 3)

    def test_constant_feature_contributes_zero(self):
        """A feature with no variance is floored, not divided by zero."""
        priors = [TeamPrior(t, talent_score=5.0) for t in TEAMS]
        prior = PriorVectorBuilder(feature_weights={"talent_score": 1.0}).build(TEAMS, priors)

        assert np.all(np.isfinite(prior.values))
        np.testing.assert_allclose(prior.values, 0.0)

    def test_weights_are_normalized(self):
        builder = PriorVectorBuilder(feature_weights={"talent_score": 2.0, "returning_prod_off": 2.0})
        assert builder.feature_weights == {"talent_score": 0.5, "returning_prod_off": 0.5}

    def test_unknown_feature_rejected(self):
        with pytest.raises(ValueError, match="Unknown prior features"):
            PriorVectorBuilder(feature_weights={"recruiting_hype": 1.0})

    def test_zero_weights_rejected(self):
        with pytest.raises(ValueError, match="positive"):
            PriorVectorBuilder(feature_weights={"talent_score": 0.0})


class TestMissingPriors:
    def test_missing_team_defaults_to_zero(self, caplog):
        priors = [TeamPrior(t, talent_score=v) for t, v in zip(TEAMS[:3], [1.0, 2.0, 3.0])]
        builder = PriorVectorBuilder(feature_weights={"talent_score": 1.0})

        with caplog.at_level("WARNING"), pytest.warns(MissingPriorWarning):
            prior = builder.build(TEAMS, priors)

        assert prior.as_dict()["D"] == 0.0
        assert prior.missing_teams == ["D"]
        assert "no prior data" in caplog.text

    def test_empty_record_counts_as_missing(self, caplog):
        """A record with every feature empty is treated like no record at all."""
        priors = [
            TeamPrior("A", talent_score=1.0, returning_prod_off=0.5, returning_prod_def=0.5),
            TeamPrior("B", talent_score=2.0, returning_prod_off=0.6, returning_prod_def=0.4),
            TeamPrior("C"),
        ]

        with caplog.at_level("WARNING"), pytest.warns(MissingPriorWarning):
            prior = PriorVectorBuilder().build(["A", "B", "C"], priors)

        assert prior.as_dict()["C"] == 0.0
        assert prior.missing_teams == ["C"]
        assert "1 of 3 teams have no prior data" in caplog.text

    def test_missing_field_is_average(self):
        """A team with a None field gets z = 0 for that field only."""
        priors = [
            TeamPrior("A", talent_score=1.0),
            TeamPrior("B", talent_score=3.0),
            TeamPrior("C", talent_score=None, returning_prod_off=0.5),
        ]
        with warnings.catch_warnings():
            warnings.simplefilter("error", MissingPriorWarning)
            prior = PriorVectorBuilder(feature_weights={"talent_score": 1.0}).build(["A", "B", "C"], priors)

        np.testing.assert_allclose(prior.values, [-1.0, 1.0, 0.0])

    def test_extra_priors_ignored(self):
        priors = [TeamPrior(t, talent_score=float(i)) for i, t in enumerate(TEAMS + ["E"])]
        prior = PriorVectorBuilder(feature_weights={"talent_score": 1.0}).build(TEAMS, priors)
        assert prior.teams == TEAMS


class TestPriorVector:
    def test_aligned_reorders(self):
        prior = PriorVector(teams=["A", "B"], values=np.array([1.0, -1.0]))
        np.testing.assert_array_equal(prior.aligned(["B", "X", "A"]), [-1.0, 0.0, 1.0])

    def test_zeros(self):
        prior = PriorVector.zeros(TEAMS)
        assert prior.as_dict() == {t: 0.0 for t in TEAMS}
