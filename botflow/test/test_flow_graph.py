import pytest

from botflow.core.FlowGraph import GraphStore
from botflow.core.GraphPrimitives import Rejection
from botflow.core.Types import NodeKind, UnknownNodeKindError


class TestCreateAndMove:

    def setup_method(self):
        self.graph = GraphStore()

    def test_ids_are_minted_from_counter(self):
        assert self.graph.create_node(NodeKind.START) == "block_1"
        assert self.graph.create_node("message", 10, 20) == "block_2"
        assert self.graph.block_counter == 2
        node = self.graph.get_node("block_2")
        assert node.kind is NodeKind.MESSAGE
        assert (node.x, node.y) == (10, 20)
        assert node.outputs == {"default": None}
        assert node.input is None

    def test_unknown_kind_raises(self):
        with pytest.raises(UnknownNodeKindError):
            self.graph.create_node("hologram")
        assert len(self.graph) == 0

    def test_kind_is_read_only(self):
        node = self.graph.get_node(self.graph.create_node("message"))
        with pytest.raises(AttributeError):
            node.kind = NodeKind.QUESTION

    def test_move_node(self):
        node_id = self.graph.create_node("message")
        assert self.graph.move_node(node_id, 5, 6) is None
        assert (self.graph.get_node(node_id).x, self.graph.get_node(node_id).y) == (5, 6)
        assert isinstance(self.graph.move_node("block_99", 0, 0), Rejection)


class TestConnect:

    def setup_method(self):
        self.graph = GraphStore()
        self.start = self.graph.create_node("start")
        self.a = self.graph.create_node("message")
        self.b = self.graph.create_node("message")
        self.cond = self.graph.create_node("condition")

    def test_connect_sets_slots(self):
        edge_id = self.graph.connect(self.start, "default", self.a)
        assert edge_id == "conn_1"
        assert self.graph.get_node(self.start).outputs["default"] == self.a
        assert self.graph.get_node(self.a).input == self.start
        assert self.graph.get_edge(edge_id).to_node_id == self.a

    def test_self_loop_rejected(self):
        result = self.graph.connect(self.a, "default", self.a)
        assert isinstance(result, Rejection)
        assert not result
        assert self.graph.edges == []

    def test_edge_into_start_rejected(self):
        assert isinstance(self.graph.connect(self.a, "default", self.start), Rejection)

    def test_unknown_port_rejected(self):
        result = self.graph.connect(self.a, "maybe", self.b)
        assert isinstance(result, Rejection)
        assert "maybe" in result.reason

    def test_unknown_node_rejected(self):
        assert isinstance(self.graph.connect("block_77", "default", self.a), Rejection)
        assert isinstance(self.graph.connect(self.a, "default", "block_77"), Rejection)

    def test_occupied_port_rejected(self):
        self.graph.connect(self.cond, "true", self.a)
        assert isinstance(self.graph.connect(self.cond, "true", self.b), Rejection)
        assert self.graph.get_node(self.cond).outputs["true"] == self.a

    def test_occupied_input_rejected(self):
        self.graph.connect(self.cond, "true", self.a)
        assert isinstance(self.graph.connect(self.cond, "false", self.a), Rejection)
        assert self.graph.get_node(self.cond).outputs["false"] is None

    def test_no_shared_ports_or_inputs(self):
        nodes = [self.start, self.a, self.b, self.cond]
        for src in nodes:
            for port in ("default", "true", "false"):
                for dst in nodes:
                    self.graph.connect(src, port, dst)
        ports = [(e.from_node_id, e.from_port) for e in self.graph.edges]
        inputs = [e.to_node_id for e in self.graph.edges]
        assert len(ports) == len(set(ports))
        assert len(inputs) == len(set(inputs))

    def test_disconnect_clears_slots(self):
        edge_id = self.graph.connect(self.a, "default", self.b)
        assert self.graph.disconnect(edge_id) is None
        assert self.graph.get_node(self.a).outputs["default"] is None
        assert self.graph.get_node(self.b).input is None
        assert isinstance(self.graph.disconnect(edge_id), Rejection)

    def test_explicit_edge_id_bumps_counter(self):
        assert self.graph.connect(self.a, "default", self.b, edge_id="conn_7") == "conn_7"
        assert self.graph.connect(self.start, "default", self.cond) == "conn_8"


class TestDeleteNode:

    def test_delete_cascades_to_edges(self):
        graph = GraphStore()
        start = graph.create_node("start")
        middle = graph.create_node("message")
        last = graph.create_node("message")
        graph.connect(start, "default", middle)
        graph.connect(middle, "default", last)

        assert graph.delete_node(middle) is None

        assert middle not in graph
        assert graph.edges == []
        assert graph.get_node(start).outputs["default"] is None
        assert graph.get_node(last).input is None

    def test_delete_missing_node(self):
        assert isinstance(GraphStore().delete_node("block_1"), Rejection)


class TestUpdateField:

    def setup_method(self):
        self.graph = GraphStore()
        self.kb = self.graph.create_node("inline_keyboard")
        self.x = self.graph.create_node("message")
        self.y = self.graph.create_node("message")
        self.graph.update_field(self.kb, "buttons", [
            {"text": "A", "callback_data": "a"},
            {"text": "B", "callback_data": "b"},
        ])
        self.graph.connect(self.kb, "a", self.x)
        self.graph.connect(self.kb, "b", self.y)

    def test_removing_a_button_drops_exactly_its_edge(self):
        assert self.graph.ports(self.kb) == ("a", "b")
        self.graph.update_field(self.kb, "buttons", [{"text": "A", "callback_data": "a"}])

        assert self.graph.ports(self.kb) == ("a",)
        assert [(e.from_port, e.to_node_id) for e in self.graph.edges] == [("a", self.x)]
        assert self.graph.get_node(self.kb).outputs == {"a": self.x}
        assert self.graph.get_node(self.y).input is None
        assert self.graph.get_node(self.x).input == self.kb

    def test_adding_a_button_opens_a_port(self):
        self.graph.update_field(self.kb, "buttons", [
            {"text": "A", "callback_data": "a"},
            {"text": "B", "callback_data": "b"},
            {"text": "C", "callback_data": "c"},
        ])
        assert self.graph.get_node(self.kb).outputs == {"a": self.x, "b": self.y, "c": None}

    def test_order_confirm_flag_toggles_port(self):
        node_id = self.graph.create_node("order_confirm")
        target = self.graph.create_node("message")
        self.graph.connect(node_id, "edit", target)
        self.graph.update_field(node_id, "show_edit", False)
        assert self.graph.ports(node_id) == ("confirm",)
        assert self.graph.edge_on_port(node_id, "edit") is None
        assert self.graph.get_node(target).input is None

    def test_unknown_field_rejected(self):
        result = self.graph.update_field(self.x, "colour", "red")
        assert isinstance(result, Rejection)

    def test_invalid_value_rejected(self):
        delay = self.graph.create_node("delay")
        assert isinstance(self.graph.update_field(delay, "seconds", "soon"), Rejection)
        assert self.graph.get_node(delay).config.seconds == 1

    def test_unknown_node_rejected(self):
        assert isinstance(self.graph.update_field("block_99", "text", "hi"), Rejection)

    def test_enum_field_stored_as_value(self):
        cond = self.graph.create_node("condition")
        assert self.graph.update_field(cond, "condition", "not_empty") is None
        assert self.graph.get_node(cond).config.condition == "not_empty"
        assert isinstance(self.graph.update_field(cond, "condition", "greater_than"), Rejection)


class TestListeners:

    def test_listeners_fire(self):
        graph = GraphStore()
        created, edges, configs = [], [], []
        graph.on_node_created(lambda node: created.append(node.id))
        graph.on_edge_changed(lambda change, edge: edges.append((change, edge.id)))
        graph.on_config_changed(lambda node, field: configs.append((node.id, field)))

        a = graph.create_node("message")
        b = graph.create_node("message")
        edge_id = graph.connect(a, "default", b)
        graph.update_field(a, "text", "Hi")
        graph.disconnect(edge_id)

        assert created == [a, b]
        assert edges == [("added", edge_id), ("removed", edge_id)]
        assert configs == [(a, "text")]

    def test_failing_listener_does_not_break_edit(self):
        graph = GraphStore()

        def broken(node):
            raise RuntimeError("ui gone")

        graph.on_node_created(broken)
        node_id = graph.create_node("message")
        assert node_id in graph
