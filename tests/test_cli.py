"""Flask CLI commands."""

from verdantwise.utils.errors import WeatherFetchFailed


def test_weather_command(app, fake_provider):
    result = app.test_cli_runner().invoke(args=["weather", "Paris"])
    assert result.exit_code == 0
    assert "Paris" in result.output
    assert "Sunny" in result.output


def test_weather_command_mock_fallback(app, fake_provider):
    fake_provider.error = WeatherFetchFailed("down")
    runner = app.test_cli_runner()

    failed = runner.invoke(args=["weather", "Paris"])
    assert failed.exit_code == 1

    result = runner.invoke(args=["weather", "Paris", "--mock-ok"])
    assert result.exit_code == 0
    assert "mock data" in result.output


def test_achievements_command(app):
    result = app.test_cli_runner().invoke(args=["achievements"])
    assert result.exit_code == 0
    assert "Unlocked 0/" in result.output
