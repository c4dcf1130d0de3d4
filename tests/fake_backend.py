"""In-process stand-in for the chat backend (socket + REST) used by the tests."""

import asyncio
import itertools
import json
from typing import Dict, List, Optional, Set

from aiohttp import WSMsgType, web


class FakeBackend:
    def __init__(self) -> None:
        self.sockets: Dict[str, Set[web.WebSocketResponse]] = {}
        self.received: List[dict] = []
        self.users: List[str] = []
        self.rooms: Dict[str, dict] = {}
        self.broadcast_history: List[dict] = []
        self.dm_history: Dict[frozenset, List[dict]] = {}
        self.room_history: Dict[str, List[dict]] = {}
        self.history_calls: List[Dict[str, str]] = []
        self.history_gate: Optional[asyncio.Event] = None
        self.fail_history = False
        self.deleted: List[Dict[str, str]] = []
        self.uploads: List[Dict[str, object]] = []
        self._room_ids = itertools.count(1)

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/chat", self.handle_ws)
        app.router.add_get("/api/history", self.handle_history)
        app.router.add_get("/api/users", self.handle_users)
        app.router.add_get("/api/rooms", self.handle_list_rooms)
        app.router.add_post("/api/rooms", self.handle_create_room)
        app.router.add_post("/api/chat/delete", self.handle_delete)
        app.router.add_post("/api/upload", self.handle_upload)
        return app

    def add_room(self, room_id: str, name: str, members: List[str]) -> None:
        self.rooms[room_id] = {"id": room_id, "name": name, "members": list(members)}

    async def push(self, username: str, payload: object) -> None:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        for ws in list(self.sockets.get(username, ())):
            await ws.send_str(text)

    async def broadcast_presence(self) -> None:
        frame = {"type": "PRESENCE", "online": sorted(self.sockets)}
        for username in list(self.sockets):
            await self.push(username, frame)

    async def disconnect_all(self) -> None:
        for sockets in list(self.sockets.values()):
            for ws in list(sockets):
                await ws.close()

    async def handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        username = request.query.get("username", "")
        self.sockets.setdefault(username, set()).add(ws)
        await self.broadcast_presence()
        try:
            async for msg in ws:
                if msg.type != WSMsgType.TEXT:
                    continue
                frame = json.loads(msg.data)
                self.received.append(frame)
                await self._route(frame)
        finally:
            sockets = self.sockets.get(username)
            if sockets is not None:
                sockets.discard(ws)
                if not sockets:
                    self.sockets.pop(username, None)
            await self.broadcast_presence()
        return ws

    async def _route(self, frame: dict) -> None:
        room_id = frame.get("roomId")
        if room_id:
            room = self.rooms.get(room_id)
            if room is None:
                return
            for member in room["members"]:
                await self.push(member, frame)
            return
        receiver = frame.get("receiver") or "ALL"
        if receiver == "ALL":
            for username in list(self.sockets):
                await self.push(username, frame)
            return
        await self.push(receiver, frame)
        await self.push(frame.get("sender", ""), frame)

    async def handle_history(self, request: web.Request) -> web.Response:
        params = dict(request.query)
        self.history_calls.append(params)
        if self.history_gate is not None:
            await self.history_gate.wait()
        if self.fail_history:
            return web.json_response({"error": "boom"}, status=500)
        if params.get("roomId"):
            return web.json_response(self.room_history.get(params["roomId"], []))
        if params.get("with") == "ALL":
            return web.json_response(self.broadcast_history)
        pair = frozenset((params.get("me", ""), params.get("with", "")))
        return web.json_response(self.dm_history.get(pair, []))

    async def handle_users(self, _: web.Request) -> web.Response:
        return web.json_response(self.users)

    async def handle_list_rooms(self, request: web.Request) -> web.Response:
        me = request.query.get("me", "")
        return web.json_response([room for room in self.rooms.values() if me in room["members"]])

    async def handle_create_room(self, request: web.Request) -> web.Response:
        body = await request.json()
        room_id = f"r{next(self._room_ids)}"
        self.add_room(room_id, body["name"], body["members"])
        return web.json_response(self.rooms[room_id])

    async def handle_delete(self, request: web.Request) -> web.Response:
        self.deleted.append(dict(request.query))
        return web.Response(text="")

    async def handle_upload(self, request: web.Request) -> web.Response:
        reader = await request.multipart()
        part = await reader.next()
        data = await part.read()
        self.uploads.append({"filename": part.filename, "size": len(data)})
        return web.json_response(
            {
                "fileUrl": f"http://files.test/{part.filename}",
                "fileName": part.filename,
                "fileType": part.headers.get("Content-Type", ""),
                "fileSize": len(data),
            }
        )


async def wait_for(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)
