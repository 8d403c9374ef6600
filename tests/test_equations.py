"""Tests for the equation builder."""

import numpy as np
import pytest

from mftr.data.schema import GameObservation
from mftr.errors import InsufficientDataError
from mftr.models.equations import build_equations, trim_outliers


def _games():
    return [
        GameObservation("g1", "BAMA", "AUB", 1, 7.5),
        GameObservation("g2", "UGA", "BAMA", 1, -3.0, neutral_site=True),
        GameObservation("g3", "AUB", "UGA", 2, -10.0, set_label="B", row_weight=0.6),
    ]


class TestDesignMatrix:
    def test_row_layout(self):
        """+1 home, -1 away, HFA feature in the last column."""
        system = build_equations(_games(), min_games=1)
        A = system.A.toarray()

        assert system.teams == ["AUB", "BAMA", "UGA"]
        assert A.shape == (3, 4)
        np.testing.assert_array_equal(A[0], [-1.0, 1.0, 0.0, 1.0])
        np.testing.assert_array_equal(A[2], [1.0, 0.0, -1.0, 1.0])

    def test_neutral_site_has_no_hfa(self):
        system = build_equations(_games(), min_games=1)
        A = system.A.toarray()
        np.testing.assert_array_equal(A[1], [0.0, -1.0, 1.0, 0.0])
        # Zero HFA entry is not stored
        assert system.A.nnz == 8

    def test_targets_and_weights_carried(self):
        system = build_equations(_games(), min_games=1)
        np.testing.assert_array_equal(system.b, [7.5, -3.0, -10.0])
        np.testing.assert_array_equal(system.weights, [1.0, 1.0, 0.6])
        assert system.hfa_col == 3
        assert system.team_to_idx["UGA"] == 2

    def test_team_universe_adds_columns(self):
        """Teams in the universe without games still get a column."""
        system = build_equations(_games(), team_universe=["AUB", "BAMA", "UGA", "LSU"], min_games=1)
        assert system.teams == ["AUB", "BAMA", "LSU", "UGA"]
        assert system.A.toarray()[:, 2].sum() == 0

    def test_team_outside_universe_rejected(self):
        with pytest.raises(ValueError, match="not in the team universe"):
            build_equations(_games(), team_universe=["AUB", "BAMA"], min_games=1)


class TestOutlierTrim:
    def test_trim_outliers(self):
        games = _games() + [GameObservation("g4", "BAMA", "UGA", 2, 42.0)]
        kept, trimmed = trim_outliers(games, 35.0)
        assert [g.game_id for g in kept] == ["g1", "g2", "g3"]
        assert [g.game_id for g in trimmed] == ["g4"]

    def test_cap_is_inclusive(self):
        games = [GameObservation("g1", "BAMA", "AUB", 1, -35.0)]
        kept, trimmed = trim_outliers(games, 35.0)
        assert len(kept) == 1 and not trimmed

    def test_non_finite_target_trimmed(self):
        games = [GameObservation("g1", "BAMA", "AUB", 1, float("nan"))]
        kept, trimmed = trim_outliers(games, 35.0)
        assert not kept and len(trimmed) == 1

    def test_builder_records_trim_count(self, caplog):
        games = _games() + [GameObservation("g4", "BAMA", "UGA", 2, 42.0)]
        with caplog.at_level("INFO"):
            system = build_equations(games, outlier_cap=35.0, min_games=1)
        assert system.n_games == 3
        assert system.n_trimmed == 1
        assert "Trimmed outliers" in caplog.text


class TestInsufficientData:
    def test_below_minimum_raises(self):
        with pytest.raises(InsufficientDataError, match="Insufficient games"):
            build_equations(_games(), min_games=50)

    def test_trimming_counts_against_minimum(self):
        games = _games() + [GameObservation("g4", "BAMA", "UGA", 2, 42.0)]
        with pytest.raises(InsufficientDataError):
            build_equations(games, outlier_cap=35.0, min_games=4)

    def test_default_minimum_from_settings(self, season):
        """The synthetic season (66 games) clears the default minimum of 50."""
        system = build_equations(season.games)
        assert system.n_games == 66
        assert system.n_teams == 12


class TestSchemaChecks:
    def test_same_team_rejected(self):
        with pytest.raises(ValueError, match="home and away"):
            build_equations([GameObservation("g1", "BAMA", "BAMA", 1, 0.0)], min_games=1)

    def test_non_positive_weight_rejected(self):
        with pytest.raises(ValueError, match="row_weight"):
            build_equations([GameObservation("g1", "BAMA", "AUB", 1, 0.0, row_weight=0.0)], min_games=1)
