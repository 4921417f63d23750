import pytest
from loguru import logger

import autocal.util
from autocal.device import (
    CardController,
    MockA2DCard,
    MockCardChannel,
    channel_mask,
    describe_mask,
)
from autocal.types import (
    A2DSetupReply,
    ErrorKind,
    FaultReply,
    SensorActionReply,
    StatusReply,
)
from autocal.util import NO_CAL_VOLTAGE, TEST_LOGLEVEL


class TestCardController:
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

    @pytest.fixture
    def card(self, card_factory):
        return card_factory(ranges=((1, True), (2, False)))

    @pytest.fixture
    def mock_card(self, card):
        return MockA2DCard.from_setup(card)

    @pytest.fixture
    def channel(self, card, mock_card):
        chan = MockCardChannel(card.dsm_name, {card.dev_name: mock_card})
        chan.open()
        return chan

    @pytest.fixture
    def controller(self, channel):
        return CardController(lambda dsm: channel)

    def test_mask_helpers(self):
        assert channel_mask([0, 1]) == 0b11
        assert channel_mask([]) == 0
        assert describe_mask(0b101) == "- - - - - X - X"

    def test_query_setup(self, controller, card):
        reply = controller.query_setup(card)
        assert reply.ok, reply.message
        assert reply.setup.n_channels == 8
        assert reply.setup.gain[:2] == (1, 2)
        assert reply.setup.polarity_flag[:2] == (0, 1)
        assert reply.setup.current_cal_voltage == NO_CAL_VOLTAGE

    def test_short_setup_reply(self, controller, card, mock_card):
        mock_card.gain = [1]
        reply = controller.query_setup(card)
        assert not reply.ok
        assert reply.error is ErrorKind.REMOTE_FAULT
        assert "gain" in reply.message
        assert reply.setup is None

    def test_set_and_release(self, controller, card, mock_card, channel):
        reply = controller.set_test_voltage(card, channel_mask([0, 1]), 5)
        assert reply.ok
        assert mock_card.vcal == 5
        assert mock_card.calset[:3] == [1, 1, 0]
        assert mock_card.applied_voltage(0) == 5
        assert mock_card.applied_voltage(2) is None

        request = channel.requests[-1]
        assert request.action == "testVoltage"
        assert (request.state, request.voltage, request.calset) == (1, 5, 0b11)

        assert controller.release(card).ok
        assert mock_card.vcal == NO_CAL_VOLTAGE
        assert mock_card.calset == [0] * 8
        request = channel.requests[-1]
        assert (request.state, request.voltage, request.calset) == (0, 0, 0xFF)

    def test_remote_fault(self, controller, card, mock_card):
        mock_card.fault = "ioctl failed"
        reply = controller.set_test_voltage(card, 1, 1)
        assert not reply.ok
        assert reply.error is ErrorKind.REMOTE_FAULT
        assert "ioctl failed" in reply.message

        reply = controller.query_setup(card)
        assert reply.error is ErrorKind.REMOTE_FAULT

    def test_unreachable(self, controller, card, channel):
        channel.dark = True
        reply = controller.query_setup(card)
        assert not reply.ok
        assert reply.error is ErrorKind.UNREACHABLE

    def test_unknown_device(self, controller, card, channel):
        channel.cards.clear()
        reply = controller.release(card)
        assert reply.error is ErrorKind.REMOTE_FAULT

    def test_manual_test_voltage(self, controller, card, mock_card):
        assert controller.test_voltage(card, 3, 10).ok
        assert mock_card.calset[3] == 1
        assert sum(mock_card.calset) == 1
        with pytest.raises(IndexError):
            controller.test_voltage(card, 8, 1)

    def test_channels_cached_until_close(self, card, channel):
        opened = []

        def connect(dsm_name):
            opened.append(dsm_name)
            return channel

        controller = CardController(connect)
        controller.query_setup(card)
        controller.release(card)
        assert opened == ["dsm1"]

        controller.close()
        assert not channel.is_connected()
        controller.query_setup(card)
        assert opened == ["dsm1", "dsm1"]

    def test_reply_discriminator(self):
        raw = A2DSetupReply(n_channels=4, gain=[1, 1, 2, 4], vcal=5).to_msgpack()
        reply = SensorActionReply.from_msgpack(raw)
        assert isinstance(reply, A2DSetupReply)
        assert reply.gain == [1, 1, 2, 4]

        assert isinstance(
            SensorActionReply.from_msgpack(StatusReply(value="ok").to_msgpack()),
            StatusReply,
        )
        fault = SensorActionReply.from_msgpack(
            FaultReply(fault_string="boom").to_msgpack()
        )
        assert isinstance(fault, FaultReply)
        assert fault.fault_string == "boom"
