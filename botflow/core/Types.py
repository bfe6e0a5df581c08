from enum import Enum
from typing import Union


class UnknownNodeKindError(ValueError):
    """Raised when a node kind is not part of the closed NodeKind set."""


class NodeKind(Enum):
    # Member names are the domain names, values are the snapshot wire tags.
    START = "start"
    MESSAGE = "message"
    QUESTION = "question"
    CHOICE = "choice"
    CONDITION = "condition"
    DELAY = "delay"
    SET_VARIABLE = "variable"
    LOOP = "loop"
    SEND_IMAGE = "image"
    INLINE_KEYBOARD = "inline_keyboard"
    COMPUTE = "calculation"
    CART_OP = "cart"
    PAYMENT = "payment"
    RECORD_STORE = "database"
    CATALOG = "catalog"
    INTAKE_FORM = "order_form"
    NOTIFY = "notification"
    ORDER_CONFIRM = "order_confirm"
    LLM_PROMPT = "chatgpt"

    @staticmethod
    def parse(value: Union["NodeKind", str]) -> "NodeKind":
        """Accept a NodeKind, a wire tag ("inline_keyboard") or a member name ("INLINE_KEYBOARD")."""
        if isinstance(value, NodeKind):
            return value
        if isinstance(value, str):
            try:
                return NodeKind(value)
            except ValueError:
                pass
            key = value.strip().upper().replace("-", "_")
            if key in NodeKind.__members__:
                return NodeKind[key]
        raise UnknownNodeKindError(f"Unknown node kind: {value!r}")


class ConditionOp(Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_EMPTY = "not_empty"


class LoopMode(Enum):
    COUNT = "count"
    WHILE = "while"
    LIST = "list"


class CartAction(Enum):
    ADD = "add"
    REMOVE = "remove"
    SHOW = "show"
    CLEAR = "clear"
    COUNT = "count"


class StoreOperation(Enum):
    SAVE = "save"
    LOAD = "load"
    DELETE = "delete"


class CatalogSource(Enum):
    JSON = "json"
    CSV = "csv"


class NotifyTarget(Enum):
    ADMIN = "admin"
    CUSTOM = "custom"


class FormFieldType(Enum):
    NAME = "name"
    PHONE = "phone"
    EMAIL = "email"
    ADDRESS = "address"
    COMMENT = "comment"


DEFAULT_PORT = "default"
LOOP_BODY_PORT = "loop_body"
TRUE_PORT = "true"
FALSE_PORT = "false"
