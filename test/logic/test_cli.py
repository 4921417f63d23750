from configparser import ConfigParser
from pathlib import Path

import click.testing
import pytest

from autocal.cli import cli


@pytest.fixture
def cli_runner():
    return click.testing.CliRunner()


@pytest.fixture
def bench_file(tmp_path):
    """A one-card fleet whose calibration file lives under tmp_path."""
    path = tmp_path / "systems.ini"
    config = ConfigParser()
    config["Bench"] = {
        "settle_seconds": "1",
        "nsamps": "20",
        "card.main.dsm_id": "3",
        "card.main.dsm_name": "dsm3",
        "card.main.dev_id": "200",
        "card.main.dev_name": "/dev/ncar_a2d0",
        "card.main.cal_file": str(tmp_path / "cal" / "A2D" / "A2D03200.dat"),
        "card.main.sample.1.rate": "10",
        "card.main.sample.1.channels": "0, 1",
        "card.main.sample.2.rate": "1",
        "card.main.sample.2.temperature": "true",
        "card.main.chan.0.gain": "1",
        "card.main.chan.0.bipolar": "true",
        "card.main.chan.0.var": "VIN0",
        "card.main.chan.1.gain": "2",
        "card.main.chan.1.bipolar": "false",
        "card.main.chan.1.var": "VIN1",
    }
    with path.open("w") as f:
        config.write(f)
    return path


class TestInfoCLI:
    def test_tree(self, cli_runner):
        result = cli_runner.invoke(cli, ["--tree"])
        assert result.exit_code == 0
        for name in ("legacy", "levels", "run", "system", "list", "show"):
            assert f"└── {name}" in result.output

    def test_levels_table(self, cli_runner):
        result = cli_runner.invoke(cli, ["levels"])
        assert result.exit_code == 0
        assert "1T: -10, 0, 1, 5, 10" in result.output
        assert "gpDAQ: 0, 2" in result.output
        assert "all: -99, 0, 1, 2, 5, 10, -10" in result.output

    def test_levels_for_range(self, cli_runner):
        result = cli_runner.invoke(cli, ["levels", "-g", "2", "--unipolar"])
        assert result.exit_code == 0
        assert result.output.strip() == "2F: 0, 1, 5, 10"

        result = cli_runner.invoke(cli, ["levels", "-t", "gpDAQ", "-g", "2"])
        assert result.output.strip() == "gpDAQ: 0, 2"

        result = cli_runner.invoke(cli, ["levels", "-g", "4"])
        assert "not calibratable" in result.output

    def test_legacy(self, cli_runner, tmp_path):
        path = tmp_path / "A2D0101.dat"
        path.write_text("# header\n2021 Mar 15 12:30:00 1 1 0.01 1.01 0.02 1.02\n")
        result = cli_runner.invoke(cli, ["legacy", str(path), "-c", "2"])
        assert result.exit_code == 0
        assert "1T set 2021 Mar 15 12:30:00" in result.output
        assert "CH1:      0.02      1.02" in result.output

    def test_legacy_missing(self, cli_runner, tmp_path):
        result = cli_runner.invoke(cli, ["legacy", str(tmp_path / "none.dat")])
        assert result.exit_code == 0
        assert "No calibration in force" in result.output

    def test_system_list_and_show(self, cli_runner, bench_file, monkeypatch):
        home = bench_file.parent / "home"
        (home / ".autocal").mkdir(parents=True)
        bench_file.rename(home / ".autocal" / "systems.ini")
        monkeypatch.setattr(Path, "home", lambda: home)

        result = cli_runner.invoke(cli, ["system", "list"])
        assert result.exit_code == 0
        assert "- Mock" in result.output
        assert "- Bench" in result.output

        result = cli_runner.invoke(cli, ["system", "show", "bench"])
        assert result.exit_code == 0
        assert "dsm3:/dev/ncar_a2d0" in result.output
        assert "ch1 2F VIN1" in result.output

        result = cli_runner.invoke(cli, ["system", "show", "nope"])
        assert result.exit_code != 0


class TestRunCLI:
    def invoke(self, cli_runner, bench_file, *args):
        return cli_runner.invoke(
            cli,
            ["run", "-n", "Bench", "-f", str(bench_file), "--simulate", "--no-log-to-file"]
            + list(args),
        )

    def test_simulated_run_and_save(self, cli_runner, bench_file, tmp_path):
        summary = tmp_path / "summary.json"
        result = self.invoke(cli_runner, bench_file, "--save", "--summary", str(summary))
        assert result.exit_code == 0, result.output
        assert "dsm3:/dev/ncar_a2d0: saved" in result.output

        saved = tmp_path / "cal" / "auto_cal" / "A2D03200.dat"
        assert saved.exists()
        text = saved.read_text()
        assert "# auto_cal results..." in text
        # one row per exercised range
        assert len([line for line in text.splitlines() if line and line[0] != "#"]) == 2
        assert summary.exists()

    def test_simulated_run_without_save(self, cli_runner, bench_file, tmp_path):
        result = self.invoke(cli_runner, bench_file)
        assert result.exit_code == 0, result.output
        assert not (tmp_path / "cal" / "auto_cal").exists()

    def test_unknown_system(self, cli_runner, bench_file):
        result = cli_runner.invoke(
            cli,
            ["run", "-n", "Nope", "-f", str(bench_file), "--simulate", "--no-log-to-file"],
        )
        assert result.exit_code != 0
        assert "not found" in result.output
