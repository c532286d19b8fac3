import asyncio
import json

import httpx
from websockets.asyncio.client import connect

BASE_URL = "http://127.0.0.1:8000"
WS_URL = "ws://127.0.0.1:8000/ws/chat"
ROOM_ID = "abc12345"


async def recv_event(websocket, timeout: float = 2.0) -> dict | None:
    try:
        return json.loads(await asyncio.wait_for(websocket.recv(), timeout=timeout))
    except asyncio.TimeoutError:
        return None


async def check_history() -> None:
    print("=" * 50)
    print(f" 验证历史回放 GET /api/messages/{ROOM_ID} ")
    print("=" * 50)

    async with httpx.AsyncClient(base_url=BASE_URL) as client:
        resp = await client.get(f"/api/messages/{ROOM_ID}")
        print(f"状态码: {resp.status_code}")
        if resp.status_code == 200:
            messages = resp.json()["messages"]
            print(f"✅ 成功: 返回 {len(messages)} 条历史消息")
        else:
            print(f"❌ 失败: {resp.text}")


async def check_broadcast() -> None:
    print("\n" + "=" * 50)
    print(" 验证加入 / 发送 / 断线通知 ")
    print("=" * 50)

    async with connect(WS_URL) as alice:
        await alice.send(json.dumps({"type": "join", "roomId": ROOM_ID, "nickname": "alice"}))

        async with connect(WS_URL) as bob:
            await bob.send(json.dumps({"type": "join", "roomId": ROOM_ID, "nickname": "bob"}))
            print(f"alice 收到: {await recv_event(alice)}")

            await alice.send(json.dumps({
                "type": "send", "roomId": ROOM_ID, "sender": "alice", "text": "hi",
            }))
            print(f"alice 收到: {await recv_event(alice)}")
            print(f"bob   收到: {await recv_event(bob)}")

        # bob 直接断开，不发送 leave
        event = await recv_event(alice)
        print(f"alice 收到: {event}")
        if event and event.get("type") == "user-left":
            print("\n✅ 成功: bob 断线后 alice 收到了离开通知！")
        else:
            print("\n❌ 失败: 未收到离开通知。")


async def main():
    print("🟢 开始执行聊天室冒烟验证...\n")
    print("要求: 在运行本脚本前，请确保主程序服务已经在 http://127.0.0.1:8000 运行。\n")

    await check_history()
    await check_broadcast()

    print("\n🏁 验证结束。")


if __name__ == '__main__':
    asyncio.run(main())
