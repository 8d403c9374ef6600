"""Tests for the ridge rating solver."""

import numpy as np
import pytest

from mftr.data.schema import GameObservation, TeamPrior
from mftr.errors import SingularSystemError
from mftr.models.equations import build_equations
from mftr.models.priors import PriorVector, PriorVectorBuilder
from mftr.models.ridge import RidgeRatingSolver, RidgeSolution, fit_ridge


def _four_team_games(strengths, hfa=2.0):
    """Round robin among four teams with a home-site cycle so HFA is identifiable."""
    matchups = [
        ("A", "B"), ("B", "C"), ("C", "A"),
        ("D", "A"), ("B", "D"), ("C", "D"),
    ]
    return [
        GameObservation(
            game_id=f"g{i}",
            home_team_id=home,
            away_team_id=away,
            week=1 + i // 3,
            target_spread=strengths[home] - strengths[away] + hfa,
        )
        for i, (home, away) in enumerate(matchups)
    ]


def _flat_priors(teams):
    return [TeamPrior(team_id=t, talent_score=0.0, returning_prod_off=0.0, returning_prod_def=0.0) for t in teams]


class TestEndToEndRecovery:
    """Known strengths should come back out of a clean round robin."""

    def test_four_team_round_robin(self):
        """A:+6, B:+2, C:-2, D:-6 with HFA 2 at lambda 0.01."""
        strengths = {"A": 6.0, "B": 2.0, "C": -2.0, "D": -6.0}
        games = _four_team_games(strengths)

        sol = fit_ridge(games, _flat_priors(strengths), lam=0.01, min_games=6)

        for a in strengths:
            for b in strengths:
                assert sol.ratings[a] - sol.ratings[b] == pytest.approx(
                    strengths[a] - strengths[b], abs=0.5
                )
        assert sol.hfa == pytest.approx(2.0, abs=0.5)
        assert sol.hfa > 0

    def test_synthetic_season_ordering(self, make_season):
        """Recovered ratings should rank teams like the true ratings."""
        season = make_season(noise=0.5)
        sol = fit_ridge(season.games, season.priors, lam=0.1)

        order = sorted(sol.ratings, key=sol.ratings.get)
        true_order = sorted(season.true_ratings, key=season.true_ratings.get)
        assert order == true_order
        assert sol.hfa == pytest.approx(2.5, abs=0.75)


class TestCentering:
    def test_ratings_mean_zero(self, season):
        sol = fit_ridge(season.games, season.priors, lam=0.1)
        assert abs(np.mean(list(sol.ratings.values()))) < 1e-9

    def test_centering_keeps_differences(self):
        """Shifting every prior by a constant moves no pairwise difference."""
        strengths = {"A": 6.0, "B": 2.0, "C": -2.0, "D": -6.0}
        system = build_equations(_four_team_games(strengths), min_games=6)
        teams = system.teams

        base = PriorVector(teams=teams, values=np.array([1.0, 0.5, -0.5, -1.0]))
        shifted = PriorVector(teams=teams, values=base.values + 10.0)

        sol_base = RidgeRatingSolver(1.0).solve(system, base)
        sol_shifted = RidgeRatingSolver(1.0).solve(system, shifted)

        for t in teams:
            assert sol_base.ratings[t] == pytest.approx(sol_shifted.ratings[t], abs=1e-9)
        assert sol_base.hfa == pytest.approx(sol_shifted.hfa, abs=1e-9)


class TestDeterminism:
    def test_bit_identical(self, season):
        """Same inputs and lambda give bit-for-bit identical output."""
        system = build_equations(season.games)
        prior = PriorVectorBuilder().build(system.teams, season.priors)

        first = RidgeRatingSolver(0.2).solve(system, prior)
        second = RidgeRatingSolver(0.2).solve(system, prior)

        assert np.array_equal(
            np.array(list(first.ratings.values())), np.array(list(second.ratings.values()))
        )
        assert first.hfa == second.hfa


class TestLambdaLimits:
    """Ridge behaves like the prior at huge lambda and like OLS at tiny lambda."""

    def test_huge_lambda_returns_prior(self, season):
        system = build_equations(season.games)
        prior = PriorVectorBuilder().build(system.teams, season.priors)

        sol = RidgeRatingSolver(1e6).solve(system, prior)

        expected = prior.values - prior.values.mean()
        got = np.array([sol.ratings[t] for t in system.teams])
        np.testing.assert_allclose(got, expected, atol=1e-2)

    def test_huge_lambda_preserves_hfa(self, season):
        """HFA is not regularized, so it survives even when team ratings are pinned."""
        system = build_equations(season.games)
        sol = RidgeRatingSolver(1e6).solve(system, PriorVector.zeros(system.teams))

        assert max(abs(r) for r in sol.ratings.values()) < 0.01

        # With ratings pinned at 0, HFA is the weighted mean home-game target
        home_games = [g for g in system.games if not g.neutral_site]
        expected = np.average(
            [g.target_spread for g in home_games], weights=[g.row_weight for g in home_games]
        )
        assert sol.hfa == pytest.approx(expected, abs=0.05)

    def test_tiny_lambda_matches_least_squares(self, season):
        system = build_equations(season.games)
        prior = PriorVectorBuilder().build(system.teams, season.priors)

        sol = RidgeRatingSolver(1e-6).solve(system, prior)

        sw = np.sqrt(system.weights)
        dense = system.A.toarray() * sw[:, None]
        x, *_ = np.linalg.lstsq(dense, system.b * sw, rcond=None)
        ls_ratings = x[: system.n_teams] - x[: system.n_teams].mean()

        got = np.array([sol.ratings[t] for t in system.teams])
        np.testing.assert_allclose(got, ls_ratings, atol=1e-3)
        assert sol.hfa == pytest.approx(x[system.hfa_col], abs=1e-3)


class TestSingularity:
    def test_zero_lambda_is_singular(self):
        """Without regularization the rating level is unidentified."""
        strengths = {"A": 6.0, "B": 2.0, "C": -2.0, "D": -6.0}
        system = build_equations(_four_team_games(strengths), min_games=6)

        with pytest.raises(SingularSystemError):
            RidgeRatingSolver(0.0).solve(system)

    def test_disconnected_graph_solves_with_lambda(self):
        """lambda > 0 keeps two unconnected components solvable."""
        games = [
            GameObservation("g1", "A", "B", 1, 3.0),
            GameObservation("g2", "B", "A", 2, 1.0),
            GameObservation("g3", "C", "D", 1, 7.0, neutral_site=True),
            GameObservation("g4", "D", "C", 2, -5.0),
        ]
        system = build_equations(games, min_games=4)

        sol = RidgeRatingSolver(0.1).solve(system)

        assert sol.ratings["A"] > sol.ratings["B"]
        assert sol.ratings["C"] > sol.ratings["D"]

    def test_negative_lambda_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            RidgeRatingSolver(-1.0)


class TestOutlierCap:
    def test_cap_equals_manual_removal(self, season):
        """A capped blowout gives exactly the ratings of removing that game by hand."""
        blowout = GameObservation("blowout", "T00", "T11", 5, 90.0, set_label="B", row_weight=0.6)
        with_blowout = season.games + [blowout]

        capped = fit_ridge(with_blowout, season.priors, lam=0.1, outlier_cap=35.0)
        manual = fit_ridge(season.games, season.priors, lam=0.1, outlier_cap=35.0)

        assert capped.n_trimmed == 1
        assert capped.n_games == manual.n_games
        assert capped.ratings == manual.ratings
        assert capped.hfa == manual.hfa


class TestRidgeSolution:
    def _solution(self):
        return RidgeSolution(ratings={"A": 3.0, "B": -1.0, "C": -2.0}, hfa=2.0, lam=0.1)

    def test_predict_margin(self):
        sol = self._solution()
        assert sol.predict_margin("A", "B") == pytest.approx(6.0)
        assert sol.predict_margin("A", "B", neutral_site=True) == pytest.approx(4.0)

    def test_unknown_team_rated_zero(self, caplog):
        sol = self._solution()
        with caplog.at_level("WARNING"):
            margin = sol.predict_margin("A", "Z")
        assert margin == pytest.approx(5.0)
        assert "No rating for Z" in caplog.text

    def test_predict_games_uses_hfa_feature(self):
        sol = self._solution()
        games = [
            GameObservation("g1", "A", "C", 1, 0.0),
            GameObservation("g2", "A", "C", 1, 0.0, neutral_site=True),
        ]
        np.testing.assert_allclose(sol.predict_games(games), [7.0, 5.0])

    def test_ratings_df_sorted(self):
        df = self._solution().get_ratings_df()
        assert list(df["team_id"]) == ["A", "B", "C"]
        assert list(df["rank"]) == [1, 2, 3]

    def test_evaluate_sets_splits(self):
        sol = self._solution()
        games = [
            GameObservation("g1", "A", "B", 1, 6.0, set_label="A"),
            GameObservation("g2", "B", "C", 1, 3.0, set_label="A"),
            GameObservation("g3", "C", "A", 1, -3.0, set_label="B"),
        ]
        metrics = sol.evaluate_sets(games, primary_label="A", secondary_label="B")

        assert metrics["primary"].n == 2
        assert metrics["secondary"].n == 1
        assert metrics["all"].n == 3
        assert metrics["primary"].rmse == pytest.approx(0.0)
