import pytest
from loguru import logger

import autocal.util
from autocal.meas import ALL_KNOWN_LEVELS, DEFAULT_VOLTAGE_LEVELS, VoltageCatalog
from autocal.types import DMMAT, GPDAQ, ChannelSetup
from autocal.util import TEST_LOGLEVEL


class TestVoltageCatalog:
    @pytest.fixture(autouse=True, scope="class")
    def run_log(self):
        autocal.util.start_run_log(
            log_level=TEST_LOGLEVEL, log_to_stdout=True, log_to_file=False
        )
        yield
        autocal.util.shutdown_run_log()

    @pytest.fixture(autouse=True, scope="function")
    def log(self, request):
        logger.warning("STARTED Test '{}'".format(request.node.originalname))

        def fin():
            logger.warning("COMPLETED Test '{}' \n".format(request.node.originalname))

        request.addfinalizer(fin)

    @pytest.mark.parametrize(
        "card_type, gain, bipolar, expected",
        [
            ("", 1, True, (-10, 0, 1, 5, 10)),
            ("", 2, False, (0, 1, 5, 10)),
            ("", 2, True, (0, 1, 5)),
            ("", 4, False, (0, 1, 5)),
            ("ncar_a2d", 1, True, (-10, 0, 1, 5, 10)),
            (GPDAQ, 1, True, (0, 2)),
            (GPDAQ, 2, False, (0, 2)),
            (DMMAT, 4, True, (0, 1, 5)),
        ],
    )
    def test_default_levels(self, card_type, gain, bipolar, expected):
        assert VoltageCatalog().levels_for(card_type, gain, bipolar) == expected

    def test_uncalibratable_range_is_empty(self):
        catalog = VoltageCatalog()
        assert catalog.levels_for("", 4, True) == ()
        assert catalog.levels_for("", 1, False) == ()

    def test_levels_are_sorted_and_unique(self):
        catalog = VoltageCatalog({"1T": [5, -10, 0, 5, 1]})
        assert catalog.levels_for("", 1, True) == (-10, 0, 1, 5)

    def test_key_prefers_card_type(self):
        assert VoltageCatalog.key(GPDAQ, 2, False) == GPDAQ
        assert VoltageCatalog.key(DMMAT, 1, True) == DMMAT
        assert VoltageCatalog.key("ncar_a2d", 2, False) == "2F"

    def test_levels_for_channel(self, card_factory):
        card = card_factory(ranges=((1, True), (2, False)))
        catalog = VoltageCatalog()
        assert catalog.levels_for_channel(card, card.channels[1]) == (0, 1, 5, 10)
        assert catalog.levels_for_channel(
            card, ChannelSetup(channel=2, gain=4, bipolar=True)
        ) == ()

    def test_all_levels(self):
        assert VoltageCatalog().all_levels() == ALL_KNOWN_LEVELS
        assert -99 in ALL_KNOWN_LEVELS
        for levels in DEFAULT_VOLTAGE_LEVELS.values():
            assert set(levels) <= set(ALL_KNOWN_LEVELS)
