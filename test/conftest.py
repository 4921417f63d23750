import pytest

from autocal.meas import SimulatedFleet, VoltageCatalog
from autocal.types import CardSetup, ChannelSetup, RunConfig, SampleTag, UnitId


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "slow: marks test as slow running test")
    config.addinivalue_line(
        "markers", "hardware: marks test that require physical A2D hardware"
    )


UNIT_A = UnitId(1, 200)
UNIT_B = UnitId(2, 200)


def make_card(
    unit=UNIT_A,
    dsm_name="dsm1",
    ranges=((1, True), (1, True)),
    cal_dir=None,
    card_type="ncar_a2d",
    rate=10.0,
):
    """One card with a channel per entry of `ranges`, all carried by sample id 1."""
    channels = tuple(
        ChannelSetup(channel=chn, gain=gain, bipolar=bipolar, var_name=f"V{chn}")
        for chn, (gain, bipolar) in enumerate(ranges)
    )
    cal_file = ""
    if cal_dir is not None:
        cal_file = str(cal_dir / "A2D" / f"A2D{unit.dsm_id:02d}{unit.dev_id}.dat")
    return CardSetup(
        unit=unit,
        dsm_name=dsm_name,
        dev_name="/dev/ncar_a2d0",
        card_type=card_type,
        n_channels=8,
        channels=channels,
        sample_tags=(
            SampleTag(sample_id=1, rate=rate, channels=tuple(range(len(ranges)))),
            SampleTag(sample_id=2, rate=1.0, is_temperature=True),
        ),
        cal_file=cal_file,
    )


@pytest.fixture
def card_factory():
    return make_card


@pytest.fixture
def run_config(tmp_path):
    """Single card, two bipolar gain 1 channels, short settle."""
    return RunConfig(
        system_name="test",
        settle_seconds=1.0,
        nsamps=100,
        cards=[make_card(cal_dir=tmp_path / "cal")],
    )


@pytest.fixture
def six_level_catalog():
    return VoltageCatalog({"1T": [-10, 0, 1, 2, 5, 10]})


@pytest.fixture
def fleet(run_config):
    return SimulatedFleet.from_config(run_config)
