"""Enum contracts for discriminator columns shared by several event kinds."""

from __future__ import annotations

import enum
import logging

from sqlalchemy import Enum as SAEnum

logger = logging.getLogger(__name__)


class GateType(str, enum.Enum):
    """Capability gate slot on a vault."""

    RECEIVE_SHARES = "RECEIVE_SHARES"
    SEND_SHARES = "SEND_SHARES"
    RECEIVE_ASSETS = "RECEIVE_ASSETS"
    SEND_ASSETS = "SEND_ASSETS"


class MembershipAction(str, enum.Enum):
    """Adapter set membership change."""

    ADD = "ADD"
    REMOVE = "REMOVE"


class ChangeDirection(str, enum.Enum):
    """Direction of a cap or timelock change."""

    INCREASE = "INCREASE"
    DECREASE = "DECREASE"


def _values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


# Native enum types on PostgreSQL; VARCHAR on backends without them.
gate_type_enum = SAEnum(GateType, name="gate_type_enum", values_callable=_values)
membership_action_enum = SAEnum(MembershipAction, name="membership_action_enum", values_callable=_values)
change_direction_enum = SAEnum(ChangeDirection, name="change_direction_enum", values_callable=_values)


class VaultOrigin(str, enum.Enum):
    """How the current-state row of a vault came into existence."""

    CONSTRUCTOR = "CONSTRUCTOR"
    BACKFILL = "BACKFILL"
    BACKFILL_DEGRADED = "BACKFILL_DEGRADED"


vault_origin_enum = SAEnum(VaultOrigin, name="vault_origin_enum", values_callable=_values)
