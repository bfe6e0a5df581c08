import asyncio

from botflow.core.FlowGraph import GraphStore
from botflow.core.GraphPrimitives import Rejection
from botflow.core.Semantics import LOOP_WHILE_LIMIT
from botflow.core.Simulator import Simulator
from botflow.core.Types import NodeKind
from botflow.server.trace.trace_emitter import TraceEmitter
from botflow.server.trace.trace_types import TRACE_EVENT_TYPES


async def no_sleep(seconds):
    return None


class TestSimulator:

    def setup_method(self):
        self.graph = GraphStore()
        self.start = self.graph.create_node("start")
        self.events = []
        self.tracer = TraceEmitter()
        self.tracer.on_trace(self.events.append)
        self.sim = Simulator(self.graph, sleep=no_sleep, tracer=self.tracer)

    def node(self, kind, **fields):
        node_id = self.graph.create_node(kind)
        for field, value in fields.items():
            assert self.graph.update_field(node_id, field, value) is None
        return node_id

    def link(self, source, port, target):
        assert not isinstance(self.graph.connect(source, port, target), Rejection)

    def chain(self, *node_ids):
        previous = self.start
        for node_id in node_ids:
            self.link(previous, "default", node_id)
            previous = node_id

    def test_dispatch_covers_every_kind(self):
        kinds = set(NodeKind) - {NodeKind.START}
        assert set(self.sim._run) == kinds
        assert set(self.sim._resume_input) == {NodeKind.QUESTION, NodeKind.CHOICE, NodeKind.INTAKE_FORM}
        assert set(self.sim._resume_callback) == {NodeKind.INLINE_KEYBOARD, NodeKind.ORDER_CONFIRM, NodeKind.CATALOG}

    def test_greeting_question_answer(self):
        self.chain(
            self.node("message", text="Hi"),
            self.node("question", question="Name?", variable="name"),
            self.node("message", text="Hello {name}"),
        )

        async def scenario():
            await self.sim.start()
            assert self.sim.waiting == "input"
            await self.sim.send_text("Alice")

        asyncio.run(scenario())
        assert self.sim.bot_texts() == ["Hi", "Name?", "Hello Alice"]
        assert self.sim.variables["name"] == "Alice"
        assert [e.sender for e in self.sim.transcript] == ["bot", "bot", "user", "bot"]

    def test_condition_unset_goes_false(self):
        cond = self.node("condition", variable="x", condition="equals", value="1")
        self.chain(cond)
        self.link(cond, "true", self.node("message", text="Yes"))
        self.link(cond, "false", self.node("message", text="No"))

        asyncio.run(self.sim.start())
        assert self.sim.bot_texts() == ["No"]

    def test_trace_events(self):
        msg = self.node("message", text="Hi")
        question = self.node("question", question="?")
        self.chain(msg, question)

        asyncio.run(self.sim.start())
        types = [e["type"] for e in self.events]
        assert types == [
            "PREVIEW_START",
            "NODE_RUNNING",
            "EDGE_ACTIVE",
            "NODE_RUNNING",
            "NODE_SUSPENDED",
        ]
        assert self.events[-1]["nodeId"] == question
        assert all("ts" in e for e in self.events)
        assert set(types) <= set(TRACE_EVENT_TYPES)

    def test_restart_hint_and_slash_start(self):
        self.graph.update_field(self.start, "message", "Welcome")
        self.chain(self.node("message", text="Bye"))

        async def scenario():
            await self.sim.start()
            await self.sim.send_text("hello?")
            await self.sim.send_text("/start")

        asyncio.run(scenario())
        assert self.sim.bot_texts() == ["Welcome", "Bye"]

        asyncio.run(self.sim.send_text("again"))
        assert self.sim.bot_texts()[-1] == "Send /start to begin."

    def test_keyboard_press_and_stale_press(self):
        kb = self.node("inline_keyboard", message="Pick", buttons=[{"text": "Go", "callback_data": "go"}])
        self.chain(kb)
        self.link(kb, "go", self.node("message", text="Went"))

        async def scenario():
            await self.sim.start()
            await self.sim.press("stay")
            await self.sim.press("go")
            await self.sim.press("go")

        asyncio.run(scenario())
        assert self.sim.transcript[0].buttons == [("Go", "go")]
        assert self.sim.bot_texts() == ["Pick", "Went"]
        assert self.sim.waiting is None

    def test_catalog_and_cart(self):
        catalog = self.node("catalog", source="csv", products="name,price\nTea,3\nCake,4.5\n")
        self.chain(
            catalog,
            self.node("variable", variable="product_id", value="{product_name}"),
            self.node("cart", action="add"),
            self.node("cart", action="show"),
        )

        async def scenario():
            await self.sim.start()
            await self.sim.press("catalog_product_1")

        asyncio.run(scenario())
        assert self.sim.transcript[0].text == "🛍 Catalog (page 1/1)"
        assert self.sim.transcript[0].buttons == [("Tea - 3", "catalog_product_0"), ("Cake - 4.5", "catalog_product_1")]
        assert self.sim.bot_texts()[-1] == "🛒 Your cart:\n• Cake × 1"
        assert self.sim.variables["product_price"] == 4.5

    def test_record_store_survives_restart(self):
        self.chain(
            self.node("database", operation="load", key="seen", result_variable="before"),
            self.node("variable", variable="flag", value="yes"),
            self.node("database", operation="save", key="seen", data="flag"),
            self.node("message", text="before={before}"),
        )

        async def scenario():
            await self.sim.start()
            await self.sim.start()

        asyncio.run(scenario())
        assert self.sim.bot_texts() == ["before=yes"]
        assert self.sim.store == {"seen": "yes"}

    def test_loop_and_compute(self):
        loop = self.node("loop", count=4, counter_variable="i")
        self.chain(self.node("variable", variable="total", value="0"), loop)
        self.link(loop, "loop_body", self.node("calculation", formula="{total}+{i}", result_variable="total"))
        self.link(loop, "default", self.node("message", text="Sum {total}"))

        asyncio.run(self.sim.start())
        assert self.sim.bot_texts() == ["Sum 10"]

    def test_while_loop_is_capped(self):
        loop = self.node("loop", loop_type="while", while_variable="go", while_condition="not_empty")
        setter = self.node("variable", variable="go", value="1")
        self.chain(setter, loop)
        self.link(loop, "loop_body", self.node("message", text="tick"))

        asyncio.run(self.sim.start())
        assert len(self.sim.bot_texts()) == LOOP_WHILE_LIMIT

    def test_long_count_loop_runs_to_completion(self):
        loop = self.node("loop", count=1200)
        self.chain(loop)
        self.link(loop, "loop_body", self.node("message", text="tick"))
        self.link(loop, "default", self.node("message", text="Done"))

        asyncio.run(self.sim.start())
        texts = self.sim.bot_texts()
        assert len(texts) == 1201
        assert texts[-1] == "Done"
        assert all(e.sender == "bot" for e in self.sim.transcript)
        assert self.sim.current is None

    def test_form_prompts_for_every_field(self):
        self.chain(
            self.node("order_form", fields=[
                {"type": "name", "variable": "client"},
                {"type": "comment", "variable": ""},
            ]),
            self.node("message", text="Bye {client}"),
        )

        async def scenario():
            await self.sim.start()
            await self.sim.send_text("Bob")
            await self.sim.send_text("no comment")

        asyncio.run(scenario())
        assert self.sim.bot_texts() == [
            "Please enter your name:",
            "Please enter a comment:",
            "Thank you! Your details have been received.",
            "Bye Bob",
        ]
        assert self.sim.variables == {"client": "Bob"}

    def test_notify_and_payment_are_noted(self):
        self.chain(
            self.node("notification", admin_chat_id="42", message="New order"),
            self.node("variable", variable="total", value="9.99"),
            self.node("payment", title="Tea", amount="total", provider_token="tok", currency="EUR"),
        )

        asyncio.run(self.sim.start())
        assert self.sim.transcript[0].sender == "system"
        assert self.sim.transcript[0].text == "📨 to 42: New order"
        assert self.sim.bot_texts() == ["🧾 Tea: 9.99 EUR"]

    def test_llm_defaults_to_mock(self):
        self.chain(
            self.node("chatgpt", prompt="Hi {name}", model="gpt-4o"),
            self.node("message", text="{gpt_response}"),
        )
        self.sim.variables["name"] = "ignored after reset"

        asyncio.run(self.sim.start())
        assert self.sim.bot_texts() == ["[gpt-4o] reply to: Hi {name}"]

    def test_node_error_is_reported(self):
        self.chain(self.node("delay", seconds=2), self.node("message", text="Never"))

        async def broken_sleep(seconds):
            raise RuntimeError("clock stopped")

        self.sim.sleep = broken_sleep
        asyncio.run(self.sim.start())
        assert self.sim.bot_texts() == []
        assert self.sim.transcript[-1].text.endswith("clock stopped")
        assert self.sim.current is None
        types = [e["type"] for e in self.events]
        assert "NODE_ERROR" in types
        assert set(types) <= set(TRACE_EVENT_TYPES)

    def test_edits_are_picked_up_live(self):
        question = self.node("question", question="Name?", variable="name")
        self.chain(question)

        async def scenario():
            await self.sim.start()
            self.link(question, "default", self.node("message", text="Added later: {name}"))
            await self.sim.send_text("Zed")

        asyncio.run(scenario())
        assert self.sim.bot_texts()[-1] == "Added later: Zed"

    def test_step_mode_waits_for_resume(self):
        self.chain(self.node("message", text="One"), self.node("message", text="Two"))

        async def scenario():
            self.tracer.enable_step()
            run = asyncio.create_task(self.sim.start())
            await asyncio.sleep(0)
            assert self.sim.bot_texts() == []
            assert self.tracer.waiting == 1
            self.tracer.resume()
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            assert self.sim.bot_texts() == ["One"]
            self.tracer.disable_step()
            await run

        asyncio.run(scenario())
        assert self.sim.bot_texts() == ["One", "Two"]
