import pytest

from botflow.core.NodeCatalog import (
    CONFIG_TYPES,
    CallbackRoute,
    available_ports,
    callback_routes,
    config_from_record,
    default_config,
    is_config_derived,
    parse_kind,
)
from botflow.core.NodeConfig import InlineKeyboardConfig, OrderConfirmConfig
from botflow.core.Types import NodeKind, UnknownNodeKindError


class TestParseKind:

    def test_wire_tag(self):
        assert parse_kind("calculation") is NodeKind.COMPUTE
        assert parse_kind("order_form") is NodeKind.INTAKE_FORM
        assert parse_kind("chatgpt") is NodeKind.LLM_PROMPT

    def test_member_name_any_case(self):
        assert parse_kind("INLINE_KEYBOARD") is NodeKind.INLINE_KEYBOARD
        assert parse_kind("record-store") is NodeKind.RECORD_STORE
        assert parse_kind("set_variable") is NodeKind.SET_VARIABLE

    def test_enum_passes_through(self):
        assert parse_kind(NodeKind.LOOP) is NodeKind.LOOP

    def test_unknown_kind(self):
        with pytest.raises(UnknownNodeKindError):
            parse_kind("teleport")
        with pytest.raises(ValueError):
            parse_kind(42)


class TestDefaults:

    def test_every_kind_has_a_record(self):
        assert set(CONFIG_TYPES) == set(NodeKind)

    def test_default_config_is_fresh(self):
        a = default_config(NodeKind.CHOICE)
        b = default_config(NodeKind.CHOICE)
        a.options.append("x")
        assert b.options == [""]

    def test_documented_defaults(self):
        assert default_config("delay").seconds == 1
        assert default_config("loop").count == 3
        assert default_config("loop").loop_type == "count"
        assert default_config("cart").product_id == "product_id"
        assert default_config("payment").currency == "RUB"
        assert default_config("condition").condition == "equals"
        llm = default_config("chatgpt")
        assert llm.model == "gpt-3.5-turbo"
        assert llm.max_tokens == 500
        assert llm.result_variable == "gpt_response"
        form = default_config("order_form")
        assert form.fields[0].type == "name"
        confirm = default_config("order_confirm")
        assert (confirm.show_confirm, confirm.show_edit, confirm.show_cancel) == (True, True, False)


class TestPorts:

    @pytest.mark.parametrize("kind", [
        NodeKind.START, NodeKind.MESSAGE, NodeKind.QUESTION, NodeKind.CHOICE,
        NodeKind.DELAY, NodeKind.SET_VARIABLE, NodeKind.SEND_IMAGE, NodeKind.COMPUTE,
        NodeKind.CART_OP, NodeKind.PAYMENT, NodeKind.RECORD_STORE, NodeKind.CATALOG,
        NodeKind.INTAKE_FORM, NodeKind.NOTIFY, NodeKind.LLM_PROMPT,
    ])
    def test_single_default_port(self, kind):
        assert available_ports(kind, default_config(kind)) == ("default",)

    def test_condition_and_loop(self):
        assert available_ports("condition", default_config("condition")) == ("true", "false")
        assert available_ports("loop", default_config("loop")) == ("default", "loop_body")

    def test_inline_keyboard_ports_follow_buttons(self):
        cfg = InlineKeyboardConfig(buttons=[
            {"text": "A", "callback_data": "a"},
            {"text": "B", "callback_data": " b "},
            {"text": "A again", "callback_data": "a"},
            {"text": "Empty", "callback_data": ""},
        ])
        assert available_ports(NodeKind.INLINE_KEYBOARD, cfg) == ("a", "b")

    def test_inline_keyboard_default_has_no_ports(self):
        assert available_ports("inline_keyboard", default_config("inline_keyboard")) == ()

    def test_order_confirm_flags(self):
        assert available_ports("order_confirm", OrderConfirmConfig()) == ("confirm", "edit")
        cfg = OrderConfirmConfig(show_edit=False, show_cancel=True)
        assert available_ports("order_confirm", cfg) == ("confirm", "cancel")

    def test_config_derived_kinds(self):
        assert is_config_derived(NodeKind.INLINE_KEYBOARD)
        assert is_config_derived(NodeKind.ORDER_CONFIRM)
        assert not is_config_derived(NodeKind.CONDITION)


class TestCallbackRoutes:

    def test_inline_keyboard_tag_is_port(self):
        cfg = InlineKeyboardConfig(buttons=[{"text": "Yes", "callback_data": "yes"}])
        assert callback_routes("block_4", "inline_keyboard", cfg) == [CallbackRoute("block_4", "yes", "yes")]

    def test_order_confirm_tags(self):
        cfg = OrderConfirmConfig(show_cancel=True)
        routes = callback_routes("block_9", NodeKind.ORDER_CONFIRM, cfg)
        assert [(r.port, r.tag) for r in routes] == [
            ("confirm", "confirm_order"),
            ("edit", "edit_order"),
            ("cancel", "cancel_order"),
        ]

    def test_plain_kinds_have_no_routes(self):
        assert callback_routes("block_1", "message", default_config("message")) == []


class TestConfigFromRecord:

    def test_unknown_fields_ignored(self):
        cfg = config_from_record("message", {"text": "Hi", "colour": "red"})
        assert cfg.text == "Hi"
        assert not hasattr(cfg, "colour")

    def test_invalid_field_falls_back_to_default(self):
        cfg = config_from_record("delay", {"seconds": "soon"})
        assert cfg.seconds == 1

    def test_only_bad_fields_are_dropped(self):
        cfg = config_from_record("loop", {"loop_type": "forever", "count": 5})
        assert cfg.loop_type == "count"
        assert cfg.count == 5

    def test_lax_numbers_accepted(self):
        assert config_from_record("delay", {"seconds": "5"}).seconds == 5
