"""
Pytest fixtures for the mes-schedule test suite.

Provides:
- File-backed SQLite source and target stores (one pair per test)
- Seed helpers for timesheets, stencils and mail groups
- DeterministicClock, FakeMailer, captured_logs
"""

import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from io import StringIO

import pytest

import mes_kernel.models  # noqa: F401  (registers tables on both bases)
from mes_kernel.db.base import SourceBase, TargetBase
from mes_kernel.db.engine import (
    create_session_factory,
    create_store_engine,
    create_tables,
    session_scope,
)
from mes_kernel.domain.clock import DeterministicClock
from mes_kernel.exceptions import TransportError
from mes_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from mes_kernel.models.stencil import SteelPlateInfo, SteelPlateMeasure
from mes_kernel.models.timesheet import (
    FactoryUnit,
    ProductionLine,
    StandardWorktime,
    Station,
    WoInfo,
    WoTimesheet,
)
from mes_kernel.models.user import MailGroup, MailGroupDetail, UserInfo

# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()
    logging.getLogger("mes_kernel").setLevel(logging.DEBUG)


@pytest.fixture
def captured_logs():
    """
    Capture mes_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.run(...)
            logs = captured_logs()
            assert any(r["message"] == "actual_time_run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("mes_kernel")
    root.addHandler(handler)
    previous_level = root.level
    root.setLevel(logging.DEBUG)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock
# =============================================================================

# Morning after the default calculation date 2024-05-01 (+3 day lookback).
FIXED_NOW = datetime(2024, 5, 4, 8, 30, 0)


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(FIXED_NOW)


# =============================================================================
# Stores
# =============================================================================


@pytest.fixture
def source_url(tmp_path):
    return f"sqlite:///{tmp_path / 'source.db'}"


@pytest.fixture
def target_url(tmp_path):
    return f"sqlite:///{tmp_path / 'target.db'}"


@pytest.fixture
def source_engine(source_url):
    engine = create_store_engine(source_url)
    create_tables(engine, SourceBase.metadata)
    yield engine
    engine.dispose()


@pytest.fixture
def target_engine(target_url):
    engine = create_store_engine(target_url)
    create_tables(engine, TargetBase.metadata)
    yield engine
    engine.dispose()


@pytest.fixture
def source_sessions(source_engine):
    return create_session_factory(source_engine)


@pytest.fixture
def target_sessions(target_engine):
    return create_session_factory(target_engine)


# =============================================================================
# Source data helpers
# =============================================================================

# station_id -> (name, test_type)
STATIONS = {
    10: ("SMT_BOTTOM", "0010"),
    12: ("SMT_TOP", "0010"),
    15: ("AOI", None),
    37: ("PACKING", "0030"),
    40: ("ASSY", "0030"),
    212: ("PACK_A", "0020"),
    213: ("PACK_B", "0020"),
    229: ("QA_HANDOFF", "0020"),
    230: ("ICT", "0020"),
    300: ("DIP", "0020"),
    400: ("REWORK", "0010"),
}

UNITS = {
    "S": "SMT",
    "D": "DIP",
    "T": "TEST",
    "P": "PACKING",
    "B": "ASSEMBLY",
    "X": "REPAIR",
}


@pytest.fixture
def seed_reference_data(source_sessions):
    """Units, one line, every station in STATIONS, and two operators."""
    with session_scope(source_sessions) as session:
        for unit_no, name in UNITS.items():
            session.add(FactoryUnit(unit_no=unit_no, unit_name=name))
        session.add(ProductionLine(line_id=1, line_name="LINE-1"))
        for station_id, (name, test_type) in STATIONS.items():
            session.add(
                Station(station_id=station_id, station_name=name, test_type=test_type)
            )
        session.add(UserInfo(user_id=501, user_no="E501", user_name="Opener"))
        session.add(UserInfo(user_id=502, user_no="E502", user_name="Closer"))
    return source_sessions


@pytest.fixture
def add_timesheet(seed_reference_data):
    """
    Insert one wo_timesheet row; returns its timesheet_id.

    Defaults describe a single SMT visit at the terminal station.
    """
    counter = {"next_id": 1}

    def _add(
        wo_no: str = "WO-1",
        unit_no: str = "S",
        station_id: int = 12,
        op_cnt: int = 3,
        production_qty: int = 5,
        total_ct: Decimal | str = Decimal("10"),
        close_time: datetime = datetime(2024, 5, 1, 9, 0, 0),
        open_time: datetime | None = None,
        eng_sr: str | None = "ENG-100",
        side: str | None = "TOP",
        timesheet_id: int | None = None,
    ) -> int:
        ts_id = timesheet_id if timesheet_id is not None else counter["next_id"]
        counter["next_id"] = max(counter["next_id"], ts_id) + 1
        with session_scope(seed_reference_data) as session:
            session.add(
                WoTimesheet(
                    timesheet_id=ts_id,
                    wo_no=wo_no,
                    eng_sr=eng_sr,
                    unit_no=unit_no,
                    line_id=1,
                    station_id=station_id,
                    side=side,
                    op_cnt=op_cnt,
                    open_time=open_time or close_time - timedelta(hours=1),
                    close_time=close_time,
                    production_qty=production_qty,
                    total_ct=Decimal(total_ct),
                    create_userid=501,
                    update_userid=502,
                )
            )
        return ts_id

    return _add


@pytest.fixture
def add_standard(seed_reference_data):
    def _add(item_no, unit_no, station_id, side, ct, op_cnt, standard_id=None):
        with session_scope(seed_reference_data) as session:
            session.add(
                StandardWorktime(
                    standard_id=standard_id,
                    item_no=item_no,
                    unit_no=unit_no,
                    line_id=1,
                    station_id=station_id,
                    side=side,
                    ct=ct,
                    op_cnt=op_cnt,
                )
            )

    return _add


@pytest.fixture
def add_wo_info(seed_reference_data):
    def _add(wo_no, eng_sr):
        with session_scope(seed_reference_data) as session:
            session.add(WoInfo(wo_no=wo_no, eng_sr=eng_sr))

    return _add


@pytest.fixture
def add_stencil(source_sessions):
    """
    Insert a stencil and, optionally, one deployment event.

    ``online_at=None`` means the stencil was never deployed.
    """

    def _add(
        steel_plate_id: int,
        used: int | None = 10,
        max_uses: int | None = 100,
        online_at: datetime | None = None,
        offline_at: datetime | None = None,
        flag: str | None = None,
        status: str = "1",
        plate_no: str | None = None,
        eng_no: str | None = "ENG-100",
        location: str | None = "RACK-A",
        wip_no: str | None = "WO-9",
    ) -> int:
        with session_scope(source_sessions) as session:
            session.add(
                SteelPlateInfo(
                    steel_plate_id=steel_plate_id,
                    steel_plate_no=plate_no or f"SP-{steel_plate_id:03d}",
                    items=eng_no,
                    storage_location=location,
                    max_uses=max_uses,
                    used_count=used,
                    status=status,
                    usage_frequency_alert=flag,
                )
            )
            if online_at is not None:
                session.add(
                    SteelPlateMeasure(
                        steel_plate_id=steel_plate_id,
                        wip_no=wip_no,
                        on_date=online_at,
                        off_date=offline_at,
                    )
                )
        return steel_plate_id

    return _add


@pytest.fixture
def add_mail_group(source_sessions):
    """Create a mail group with members given as (user_id, name, email, status)."""

    def _add(group_no: str, members, group_id: int = 1):
        with session_scope(source_sessions) as session:
            session.add(MailGroup(group_id=group_id, group_no=group_no, group_name=group_no))
            session.flush()
            for user_id, name, email, status in members:
                session.add(
                    UserInfo(
                        user_id=user_id,
                        user_no=f"E{user_id}",
                        user_name=name,
                        user_email=email,
                        user_status_id=status,
                    )
                )
                session.flush()
                session.add(MailGroupDetail(group_id=group_id, user_id=user_id))

    return _add


def alert_flag(session_factory, steel_plate_id):
    with session_scope(session_factory) as session:
        return session.get(SteelPlateInfo, steel_plate_id).usage_frequency_alert


@pytest.fixture
def read_alert_flag(source_sessions):
    return lambda steel_plate_id: alert_flag(source_sessions, steel_plate_id)


# =============================================================================
# Mail
# =============================================================================


class FakeMailer:
    """Records every send; raises TransportError when ``fail`` is set."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict] = []

    def send(self, *, to_emails, subject, body_html):
        if self.fail:
            raise TransportError(tuple(to_emails), "relay refused connection")
        self.sent.append(
            {"to_emails": tuple(to_emails), "subject": subject, "body_html": body_html}
        )


@pytest.fixture
def fake_mailer():
    return FakeMailer()
