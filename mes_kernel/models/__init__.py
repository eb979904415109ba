"""ORM models for the source and target stores."""

from mes_kernel.models.actual_time import ActualTime, ActualTimeDetail
from mes_kernel.models.sequence import IdKey
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

__all__ = [
    # target store
    "ActualTime",
    "ActualTimeDetail",
    "IdKey",
    # source store
    "FactoryUnit",
    "ProductionLine",
    "Station",
    "WoInfo",
    "StandardWorktime",
    "WoTimesheet",
    "SteelPlateInfo",
    "SteelPlateMeasure",
    "UserInfo",
    "MailGroup",
    "MailGroupDetail",
]
