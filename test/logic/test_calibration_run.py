from dataclasses import replace
from pathlib import Path

import pytest
from loguru import logger

import autocal.util
from autocal.meas import CalibrationRun, SimulatedFleet
from autocal.types import ErrorKind, FillState, NoCardsFound, RunState, UnitId
from autocal.util import NO_CAL_VOLTAGE, TEST_LOGLEVEL


class TestCalibrationRun:
    @pytest.fixture(autouse=True, scope="class")
    def run_log(self):
        autocal.util.start_run_log(
            log_level=TEST_LOGLEVEL, log_to_stdout=True, log_to_file=True
        )
        yield
        autocal.util.shutdown_run_log()

    @pytest.fixture(autouse=True, scope="function")
    def log(self, request):
        logger.warning("STARTED Test '{}'".format(request.node.originalname))

        def fin():
            logger.warning("COMPLETED Test '{}' \n".format(request.node.originalname))

        request.addfinalizer(fin)

    def new_run(self, config, fleet, catalog=None, **kwargs):
        return CalibrationRun(
            config, fleet.controller(), catalog, clock=fleet.clock, **kwargs
        )

    # ------------------------------------------------------------------
    # setup
    # ------------------------------------------------------------------

    def test_setup_registers_cards(self, run_config, fleet, six_level_catalog):
        run = self.new_run(run_config, fleet, six_level_catalog)
        (card,) = run_config.cards
        assert run.setup() == [card.unit]
        assert run.max_progress == 6 * 100
        assert run.fill_state(-10, card.unit, 0) is FillState.PENDING
        # no legacy file: neutral coefficients, no diagnostic
        assert run.store.legacy(card.unit, 0) == (0.0, 1.0)
        assert run.diagnostics == []

    def test_busy_card_rejected(self, run_config, fleet):
        (card,) = run_config.cards
        fleet.cards[card.unit].vcal = 5
        run = self.new_run(run_config, fleet)
        with pytest.raises(NoCardsFound):
            run.setup()
        assert [d.kind for d in run.diagnostics] == [
            ErrorKind.CARD_BUSY,
            ErrorKind.NO_CARDS_FOUND,
        ]

    def test_busy_card_accepted_when_allowed(self, run_config, fleet):
        (card,) = run_config.cards
        fleet.cards[card.unit].vcal = 5
        run = self.new_run(replace(run_config, reject_busy_cards=False), fleet)
        assert run.setup() == [card.unit]

    def test_misconfigured_card(self, run_config, card_factory, tmp_path):
        other = card_factory(unit=UnitId(2, 200), dsm_name="dsm2")
        config = replace(run_config, cards=run_config.cards + [other])
        fleet = SimulatedFleet.from_config(config)
        (card, _) = config.cards
        fleet.cards[card.unit].offset[1] = 1  # unipolar, configuration says bipolar

        run = self.new_run(config, fleet)
        assert run.setup() == [other.unit]
        (diag,) = run.diagnostics
        assert diag.kind is ErrorKind.MISCONFIGURED_CARD
        assert diag.unit == card.unit
        assert "Reboot dsm1" in diag.message

    def test_short_setup_reply_skips_card(self, run_config, card_factory):
        other = card_factory(unit=UnitId(2, 200), dsm_name="dsm2")
        config = replace(run_config, cards=run_config.cards + [other])
        fleet = SimulatedFleet.from_config(config)
        (card, _) = config.cards
        fleet.cards[card.unit].gain = [1]

        run = self.new_run(config, fleet)
        assert run.setup() == [other.unit]
        (diag,) = run.diagnostics
        assert diag.kind is ErrorKind.REMOTE_FAULT
        assert diag.unit == card.unit
        assert "short setup reply" in diag.message

    def test_no_calibratable_range(self, run_config, card_factory, six_level_catalog):
        card = card_factory(ranges=((2, False),))
        config = replace(run_config, cards=[card])
        fleet = SimulatedFleet.from_config(config)

        run = self.new_run(config, fleet, six_level_catalog)
        with pytest.raises(NoCardsFound):
            run.setup()
        assert [d.kind for d in run.diagnostics] == [ErrorKind.NO_CARDS_FOUND]

    def test_unreachable_card(self, run_config, fleet):
        fleet.channels["dsm1"].dark = True
        run = self.new_run(run_config, fleet)
        with pytest.raises(NoCardsFound):
            run.setup()
        assert run.diagnostics[0].kind is ErrorKind.UNREACHABLE

    def test_corrupt_legacy_file(self, run_config, fleet):
        (card,) = run_config.cards
        path = Path(card.cal_file)
        path.parent.mkdir(parents=True)
        path.write_text("2020 Jan 01 00:00:00 1 1 0.1 1.1 0.2 1.2\n2020 Jan\n")

        run = self.new_run(run_config, fleet)
        assert run.setup() == [card.unit]
        assert [d.kind for d in run.diagnostics] == [ErrorKind.LEGACY_FILE_CORRUPT]
        assert run.store.legacy(card.unit, 1) == (0.2, 1.2)

    # ------------------------------------------------------------------
    # full runs
    # ------------------------------------------------------------------

    def test_full_run(self, run_config, fleet, six_level_catalog, tmp_path, monkeypatch):
        (card,) = run_config.cards
        progress = []
        run = self.new_run(run_config, fleet, six_level_catalog, on_progress=progress.append)
        run.setup()
        gathered = []
        fit_all = run.fitter.fit_all

        def fit_after_gathering():
            gathered.append((run.store.progress, list(progress)))
            return fit_all()

        monkeypatch.setattr(run.fitter, "fit_all", fit_after_gathering)
        stream = fleet.stream(run_config, offsets={(card.unit, 1): 0.05})

        assert run.run(stream) is RunState.DONE
        assert run.diagnostics == []
        assert run.progress == run.max_progress == 6 * 100
        assert progress == sorted(progress)
        assert progress[-1] == 600
        # the gatherer reached full progress on its own, before reduction
        assert gathered == [(600, progress)]

        offset, slope = run.result(card.unit, 0)
        assert offset == pytest.approx(0.0, abs=1e-6)
        assert slope == pytest.approx(1.0, abs=1e-6)
        # reading = level + 0.05  ->  level = -0.05 + 1.0 * reading
        offset, slope = run.result(card.unit, 1)
        assert offset == pytest.approx(-0.05, abs=1e-6)
        assert slope == pytest.approx(1.0, abs=1e-6)
        assert run.temperature(card.unit) == pytest.approx(25.0)

        for level in (-10, 0, 1, 2, 5, 10):
            assert run.buffer_size(card.unit, 0, level) == 100
            assert run.fill_state(level, card.unit, 1) is FillState.FULL
        mock = fleet.cards[card.unit]
        assert mock.vcal == NO_CAL_VOLTAGE
        assert mock.calset == [0] * 8

        assert run.save_all() == {card.unit: True}
        saved = tmp_path / "cal" / "auto_cal" / "A2D01200.dat"
        assert saved.read_text() == run.store.records[card.unit]
        assert run.save_all() == {card.unit: False}

    def test_cancel_reduces_partial_data(self, run_config, fleet, six_level_catalog):
        (card,) = run_config.cards
        run = None

        def on_progress(value):
            if value >= 150:
                run.cancel()

        run = self.new_run(run_config, fleet, six_level_catalog, on_progress=on_progress)
        run.setup()
        assert run.run(fleet.stream(run_config)) is RunState.DONE
        assert run.cancelled

        assert run.buffer_size(card.unit, 0, -10) == 100
        assert run.buffer_size(card.unit, 0, 0) == 50
        assert run.buffer_size(card.unit, 0, 1) == 0
        assert run.result(card.unit, 0) == pytest.approx((0.0, 1.0), abs=1e-6)
        assert run.progress == run.max_progress
        assert fleet.cards[card.unit].vcal == NO_CAL_VOLTAGE

    def test_cancel_before_run(self, run_config, fleet):
        run = self.new_run(run_config, fleet)
        run.setup()
        run.cancel()
        assert run.run(fleet.stream(run_config)) is RunState.DONE
        assert run.result_cals() == {}
        assert fleet.channels["dsm1"].requests[-1].state == 0

    def test_stream_ends_during_settle(self, run_config, fleet, six_level_catalog):
        (card,) = run_config.cards
        run = self.new_run(run_config, fleet, six_level_catalog)
        run.setup()
        # 5 samples at 10 Hz never get past the 1 s settle time
        state = run.run(fleet.stream(run_config, max_samples=5))
        assert state is RunState.DONE
        assert run.result_cals() == {}
        assert run.store.records == {}
        assert fleet.cards[card.unit].vcal == NO_CAL_VOLTAGE

    def test_all_cards_dead(self, run_config, fleet, six_level_catalog):
        (card,) = run_config.cards
        run = self.new_run(run_config, fleet, six_level_catalog)
        run.setup()
        fleet.cards[card.unit].fault = "driver gone"

        assert run.run(fleet.stream(run_config)) is RunState.DEAD
        assert [d.kind for d in run.diagnostics] == [
            ErrorKind.REMOTE_FAULT,
            ErrorKind.ALL_CARDS_DEAD,
        ]
        assert run.summary is None
        assert run.result_cals() == {}

    # ------------------------------------------------------------------
    # manual testing
    # ------------------------------------------------------------------

    def test_manual_test_voltage(self, run_config, fleet):
        (card,) = run_config.cards
        run = self.new_run(run_config, fleet)
        run.setup()

        assert run.test_voltage(card.unit, 1, 5).ok
        live = run.read_live(fleet.stream(run_config), 20)
        assert live[(card.unit, 1)] == 5.0
        assert live[(card.unit, 0)] == 0.0
        assert run.buffer_size(card.unit, 1, 5) == 0

        run.end_test()
        assert fleet.cards[card.unit].vcal == NO_CAL_VOLTAGE
        assert not run.gatherer.test_mode
