"""Tests for environment-driven settings."""

from config.settings import Settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        for var in ("MFTR_OUTLIER_CAP", "MFTR_MIN_GAMES", "MFTR_RIDGE_LAMBDA", "MFTR_LAMBDA_GRID"):
            monkeypatch.delenv(var, raising=False)
        s = Settings()
        assert s.outlier_cap == 35.0
        assert s.min_games == 50
        assert s.ridge_lambda_default == 0.1
        assert s.lambda_grid == (0.01, 0.05, 0.1, 0.2, 0.5, 1.0)
        assert s.validate() == []

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("MFTR_LAMBDA_GRID", "0.5, 2")
        monkeypatch.setenv("MFTR_OUTLIER_CAP", "28")
        s = Settings()
        assert s.lambda_grid == (0.5, 2.0)
        assert s.outlier_cap == 28.0

    def test_invalid_values_reported(self, monkeypatch):
        monkeypatch.setenv("MFTR_LAMBDA_GRID", "0,1")
        monkeypatch.setenv("MFTR_MIN_GAMES", "0")
        errors = Settings().validate()
        assert any("MFTR_LAMBDA_GRID" in e for e in errors)
        assert any("MFTR_MIN_GAMES" in e for e in errors)

    def test_validation_weeks(self):
        assert Settings().validation_weeks([3, 9, 8, 12]) == [8, 9, 12]
