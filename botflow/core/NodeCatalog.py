"""
Node Catalog — per-kind config schema, defaults and output ports.

Pure policy, no state.  Everything here is a function of (kind, config):

    default_config(kind)            -> fresh BlockConfig
    available_ports(kind, config)   -> ordered tuple of port names
    callback_routes(node_id, kind, config) -> typed (node, port, tag) routes
    config_from_record(kind, data)  -> BlockConfig, tolerant of bad fields
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, NamedTuple, Tuple, Type, Union

from pydantic import ValidationError

from .NodeConfig import (
    BlockConfig,
    CartOpConfig,
    CatalogConfig,
    ChoiceConfig,
    ComputeConfig,
    ConditionConfig,
    DelayConfig,
    InlineKeyboardConfig,
    IntakeFormConfig,
    LLMPromptConfig,
    LoopConfig,
    MessageConfig,
    NotifyConfig,
    OrderConfirmConfig,
    PaymentConfig,
    QuestionConfig,
    RecordStoreConfig,
    SendImageConfig,
    SetVariableConfig,
    StartConfig,
)
from .Types import (
    DEFAULT_PORT,
    FALSE_PORT,
    LOOP_BODY_PORT,
    TRUE_PORT,
    NodeKind,
    UnknownNodeKindError,
)

logger = logging.getLogger(__name__)


CONFIG_TYPES: Dict[NodeKind, Type[BlockConfig]] = {
    NodeKind.START:           StartConfig,
    NodeKind.MESSAGE:         MessageConfig,
    NodeKind.QUESTION:        QuestionConfig,
    NodeKind.CHOICE:          ChoiceConfig,
    NodeKind.CONDITION:       ConditionConfig,
    NodeKind.DELAY:           DelayConfig,
    NodeKind.SET_VARIABLE:    SetVariableConfig,
    NodeKind.LOOP:            LoopConfig,
    NodeKind.SEND_IMAGE:      SendImageConfig,
    NodeKind.INLINE_KEYBOARD: InlineKeyboardConfig,
    NodeKind.COMPUTE:         ComputeConfig,
    NodeKind.CART_OP:         CartOpConfig,
    NodeKind.PAYMENT:         PaymentConfig,
    NodeKind.RECORD_STORE:    RecordStoreConfig,
    NodeKind.CATALOG:         CatalogConfig,
    NodeKind.INTAKE_FORM:     IntakeFormConfig,
    NodeKind.NOTIFY:          NotifyConfig,
    NodeKind.ORDER_CONFIRM:   OrderConfirmConfig,
    NodeKind.LLM_PROMPT:      LLMPromptConfig,
}

_missing = set(NodeKind) - set(CONFIG_TYPES)
if _missing:
    raise RuntimeError(f"NodeKind without a config record: {sorted(k.name for k in _missing)}")


# Order-confirm ports in display order, with the flag that enables each one.
ORDER_CONFIRM_PORTS: Tuple[Tuple[str, str], ...] = (
    ("confirm", "show_confirm"),
    ("edit",    "show_edit"),
    ("cancel",  "show_cancel"),
)

# Port names written by older editor builds.
LEGACY_PORT_NAMES: Dict[str, str] = {
    "confirm_order": "confirm",
    "edit_order":    "edit",
    "cancel_order":  "cancel",
}


class CallbackRoute(NamedTuple):
    """One selectable button: pressing `tag` while parked on `node_id` continues to `port`."""
    node_id: str
    port: str
    tag: str


def parse_kind(value: Union[NodeKind, str]) -> NodeKind:
    """Resolve a NodeKind, wire tag or member name.  Raises UnknownNodeKindError."""
    return NodeKind.parse(value)


def config_type(kind: Union[NodeKind, str]) -> Type[BlockConfig]:
    return CONFIG_TYPES[NodeKind.parse(kind)]


def default_config(kind: Union[NodeKind, str]) -> BlockConfig:
    return config_type(kind)()


def config_from_record(kind: Union[NodeKind, str], data: Dict[str, Any]) -> BlockConfig:
    """
    Build a config record from a loose dict (snapshot block, API payload).

    Fields that fail validation fall back to their defaults one by one, so a
    single bad value never discards the rest of the record.
    """
    cls = config_type(kind)
    try:
        return cls.model_validate(data)
    except ValidationError as exc:
        bad = {str(err["loc"][0]) for err in exc.errors() if err.get("loc")}
        logger.warning("%s: dropping invalid fields %s", cls.__name__, sorted(bad))
        cleaned = {k: v for k, v in data.items() if k not in bad}
        return cls.model_validate(cleaned)


def available_ports(kind: Union[NodeKind, str], config: BlockConfig) -> Tuple[str, ...]:
    kind = NodeKind.parse(kind)

    if kind is NodeKind.CONDITION:
        return (TRUE_PORT, FALSE_PORT)

    if kind is NodeKind.LOOP:
        return (DEFAULT_PORT, LOOP_BODY_PORT)

    if kind is NodeKind.INLINE_KEYBOARD:
        ports: List[str] = []
        for button in config.buttons:
            tag = button.callback_data.strip()
            if tag and tag not in ports:
                ports.append(tag)
        return tuple(ports)

    if kind is NodeKind.ORDER_CONFIRM:
        return tuple(port for port, flag in ORDER_CONFIRM_PORTS if getattr(config, flag))

    return (DEFAULT_PORT,)


def callback_routes(node_id: str, kind: Union[NodeKind, str], config: BlockConfig) -> List[CallbackRoute]:
    """Button routes for callback-driven kinds; empty for every other kind."""
    kind = NodeKind.parse(kind)

    if kind is NodeKind.INLINE_KEYBOARD:
        return [CallbackRoute(node_id, port, port) for port in available_ports(kind, config)]

    if kind is NodeKind.ORDER_CONFIRM:
        return [
            CallbackRoute(node_id, port, f"{port}_order")
            for port in available_ports(kind, config)
        ]

    return []


def is_config_derived(kind: Union[NodeKind, str]) -> bool:
    """True when the port set depends on the config, not just the kind."""
    return NodeKind.parse(kind) in (NodeKind.INLINE_KEYBOARD, NodeKind.ORDER_CONFIRM)


__all__ = [
    "CONFIG_TYPES",
    "CallbackRoute",
    "LEGACY_PORT_NAMES",
    "ORDER_CONFIRM_PORTS",
    "UnknownNodeKindError",
    "available_ports",
    "callback_routes",
    "config_from_record",
    "config_type",
    "default_config",
    "is_config_derived",
    "parse_kind",
]
