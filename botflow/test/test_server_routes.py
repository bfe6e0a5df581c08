from fastapi.testclient import TestClient

from botflow.config import Settings
from botflow.server.main import create_app


class TestGraphRoutes:

    def setup_method(self):
        self.app = create_app(Settings())
        self.client = TestClient(self.app)

    def add(self, kind, **fields):
        res = self.client.post("/api/nodes", json={"type": kind, "x": 10, "y": 20})
        assert res.status_code == 201
        node_id = res.json()["id"]
        for field, value in fields.items():
            assert self.client.patch(f"/api/nodes/{node_id}", json={"field": field, "value": value}).status_code == 200
        return node_id

    def link(self, source, port, target):
        return self.client.post("/api/edges", json={"fromNodeId": source, "fromPort": port, "toNodeId": target})

    def test_health(self):
        assert self.client.get("/health").json() == {"status": "ok"}

    def test_fresh_graph_has_start(self):
        graph = self.client.get("/api/graph").json()
        assert list(graph["blocks"]) == ["block_1"]
        assert graph["blocks"]["block_1"]["type"] == "start"
        assert graph["connections"] == []

    def test_create_node(self):
        res = self.client.post("/api/nodes", json={"type": "message", "x": 5, "y": 6})
        assert res.status_code == 201
        block = res.json()
        assert block["id"] == "block_2"
        assert (block["x"], block["y"]) == (5, 6)
        assert block["text"] == ""

    def test_create_unknown_kind(self):
        res = self.client.post("/api/nodes", json={"type": "teleport"})
        assert res.status_code == 400

    def test_update_field(self):
        node_id = self.add("message")
        res = self.client.patch(f"/api/nodes/{node_id}", json={"field": "text", "value": "Hi"})
        assert res.status_code == 200
        assert res.json()["text"] == "Hi"

        res = self.client.patch(f"/api/nodes/{node_id}", json={"field": "colour", "value": "red"})
        assert res.status_code == 409
        assert self.client.patch("/api/nodes/block_99", json={"field": "text", "value": "x"}).status_code == 404

    def test_move_node(self):
        node_id = self.add("message")
        res = self.client.put(f"/api/nodes/{node_id}/position", json={"x": 300, "y": 40})
        assert res.status_code == 204
        block = self.client.get("/api/graph").json()["blocks"][node_id]
        assert (block["x"], block["y"]) == (300, 40)

    def test_connect_and_ports(self):
        node_id = self.add("message")
        res = self.link("block_1", "default", node_id)
        assert res.status_code == 201
        edge = res.json()
        assert edge["from"] == "block_1"
        assert edge["to"] == node_id

        ports = self.client.get("/api/nodes/block_1/ports").json()
        assert ports == {"ports": ["default"], "outputs": {"default": node_id}}

    def test_rejected_connection(self):
        node_id = self.add("message")
        res = self.link(node_id, "default", "block_1")
        assert res.status_code == 409
        assert self.client.get("/api/graph").json()["connections"] == []

    def test_keyboard_ports_follow_buttons(self):
        kb = self.add("inline_keyboard", buttons=[{"text": "A", "callback_data": "a"}, {"text": "B", "callback_data": "b"}])
        assert self.client.get(f"/api/nodes/{kb}/ports").json()["ports"] == ["a", "b"]

    def test_delete_edge_and_node(self):
        node_id = self.add("message")
        edge_id = self.link("block_1", "default", node_id).json()["id"]

        assert self.client.delete(f"/api/edges/{edge_id}").status_code == 204
        assert self.client.delete(f"/api/edges/{edge_id}").status_code == 404

        assert self.client.delete(f"/api/nodes/{node_id}").status_code == 204
        assert self.client.delete(f"/api/nodes/{node_id}").status_code == 404
        assert self.client.get(f"/api/nodes/{node_id}/ports").status_code == 404

    def test_undo_redo(self):
        node_id = self.add("message")

        res = self.client.post("/api/history/undo").json()
        assert res["changed"] is True
        assert node_id not in res["graph"]["blocks"]
        assert res["canRedo"] is True

        res = self.client.post("/api/history/redo").json()
        assert node_id in res["graph"]["blocks"]
        assert res["canRedo"] is False

    def test_compile(self):
        node_id = self.add("message", text="Hi")
        self.link("block_1", "default", node_id)

        res = self.client.post("/api/compile", json={"name": "Pizza Bot", "token": "1:abc"})
        assert res.status_code == 200
        body = res.json()
        assert body["filename"] == "pizza_bot.py"
        assert "BOT_NAME = 'Pizza Bot'" in body["source"]

    def test_compile_without_body_uses_settings(self):
        res = self.client.post("/api/compile")
        assert res.status_code == 200
        assert res.json()["filename"] == "mybot.py"

    def test_compile_error(self):
        self.client.delete("/api/nodes/block_1")
        res = self.client.post("/api/compile")
        assert res.status_code == 422
        detail = res.json()["detail"]
        assert "start" in detail["message"]
        assert detail["nodeId"] is None

    def test_put_graph(self):
        snapshot = {
            "blocks": {
                "block_1": {"type": "start", "x": 0, "y": 0, "message": "Yo"},
                "block_7": {"type": "message", "x": 0, "y": 0, "text": "Hi"},
            },
            "connections": [{"from": "block_1", "fromPort": "default", "to": "block_7"}],
        }
        res = self.client.put("/api/graph", json=snapshot)
        assert res.status_code == 200
        graph = res.json()
        assert graph["blockCounter"] == 7
        assert graph["blocks"]["block_1"]["connections"]["outputs"] == {"default": "block_7"}

    def test_put_graph_schema_error(self):
        res = self.client.put("/api/graph", json={"nodes": []})
        assert res.status_code == 400
        assert list(self.client.get("/api/graph").json()["blocks"]) == ["block_1"]


class TestPreviewRoutes:

    def setup_method(self):
        self.client = TestClient(create_app(Settings()))
        client = self.client
        client.patch("/api/nodes/block_1", json={"field": "message", "value": "Welcome"})
        question = client.post("/api/nodes", json={"type": "question"}).json()["id"]
        client.patch(f"/api/nodes/{question}", json={"field": "question", "value": "Name?"})
        client.patch(f"/api/nodes/{question}", json={"field": "variable", "value": "name"})
        reply = client.post("/api/nodes", json={"type": "message"}).json()["id"]
        client.patch(f"/api/nodes/{reply}", json={"field": "text", "value": "Hello {name}"})
        client.post("/api/edges", json={"fromNodeId": "block_1", "fromPort": "default", "toNodeId": question})
        client.post("/api/edges", json={"fromNodeId": question, "fromPort": "default", "toNodeId": reply})
        self.question = question

    def test_conversation(self):
        state = self.client.post("/api/preview/start").json()
        assert [e["text"] for e in state["transcript"]] == ["Welcome", "Name?"]
        assert state["waiting"] == "input"
        assert state["current"] == self.question

        state = self.client.post("/api/preview/text", json={"text": "Alice"}).json()
        assert state["transcript"][-1]["text"] == "Hello Alice"
        assert state["variables"] == {"name": "Alice"}
        assert state["waiting"] is None
        assert self.client.get("/api/preview").json() == state

    def test_stale_callback_is_ignored(self):
        self.client.post("/api/preview/start")
        before = self.client.get("/api/preview").json()
        after = self.client.post("/api/preview/callback", json={"tag": "nothing"}).json()
        assert after == before

    def test_loading_a_graph_clears_preview(self):
        self.client.post("/api/preview/start")
        self.client.put("/api/graph", json={"blocks": {"block_1": {"type": "start"}}})
        assert self.client.get("/api/preview").json()["transcript"] == []

    def test_step_resume(self):
        assert self.client.post("/api/preview/step/resume").json() == {"ok": True}
