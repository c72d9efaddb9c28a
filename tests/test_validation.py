"""
Unit tests for equation validation reports
"""
import pytest

from equation_backtest import ValidationReport, validate_equation


class TestValidEquations:
    """Equations that compile"""

    def test_report_lists_references(self):
        """Test listing indicators and price variables"""
        report = validate_equation("close > sma(20) and rsi(14) < 70")
        assert isinstance(report, ValidationReport)
        assert report.is_valid
        assert report.errors == []
        assert report.variables == ["CLOSE"]
        assert report.indicators == ["RSI(14)", "SMA(20)"]

    def test_derived_values_are_indicators(self):
        """Test derived values being listed as indicators"""
        report = validate_equation("MACD_LINE > MACD_SIGNAL AND CLOSE < BB_LOWER")
        assert report.is_valid
        assert report.indicators == ["BB_LOWER", "MACD_LINE", "MACD_SIGNAL"]
        assert report.variables == ["CLOSE"]

    def test_variables_in_price_field_order(self):
        """Test price variables following OHLCV order"""
        report = validate_equation("VOLUME > 0 AND CLOSE > OPEN")
        assert report.variables == ["OPEN", "CLOSE", "VOLUME"]

    def test_default_period_functions(self):
        """Test bare ADX and STOCHASTIC calls validating"""
        report = validate_equation("ADX > 25 AND STOCHASTIC(14, 3) < 20")
        assert report.is_valid
        assert report.indicators == ["ADX(14)", "STOCH_K"]

    def test_rsi_without_comparison_warns(self):
        """Test warning when RSI is used without a comparison"""
        report = validate_equation("RSI(14)")
        assert report.is_valid
        assert any("RSI is typically used" in w for w in report.warnings)
        assert any("no comparison" in w for w in report.warnings)

    def test_constant_equation_warns(self):
        """Test warning on an equation without references"""
        report = validate_equation("1 > 0")
        assert report.is_valid
        assert report.warnings == ["No indicators or price variables detected in the equation"]

    def test_clean_equation_has_no_warnings(self):
        """Test a typical equation producing no warnings"""
        report = validate_equation("RSI(14) < 30")
        assert report.warnings == []


class TestInvalidEquations:
    """Equations that are rejected"""

    @pytest.mark.parametrize("equation", ["", "   ", None])
    def test_empty(self, equation):
        """Test rejecting empty input"""
        report = validate_equation(equation)
        assert not report.is_valid
        assert report.errors == ["Equation cannot be empty"]

    def test_unknown_identifier_with_suggestion(self):
        """Test suggesting a close vocabulary match"""
        report = validate_equation("CLOSE > SMAA(20)")
        assert not report.is_valid
        assert report.errors == ["unknown identifier 'SMAA'"]
        assert len(report.suggestions) == 1
        assert "SMA" in report.suggestions[0]

    def test_every_unknown_word_reported_once(self):
        """Test reporting each unknown word once, in order"""
        report = validate_equation("FOO > BAR AND FOO > 1")
        assert report.errors == ["unknown identifier 'FOO'", "unknown identifier 'BAR'"]

    def test_grammar_error_message(self):
        """Test a grammar error appearing in the report"""
        report = validate_equation("CLOSE >")
        assert not report.is_valid
        assert report.errors[0].startswith("unexpected end of equation")
        assert report.indicators == []

    def test_missing_period(self):
        """Test rejecting EMA without a period"""
        report = validate_equation("EMA > CLOSE")
        assert not report.is_valid
        assert "EMA requires a period" in report.errors[0]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
