import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path

from community_chat.client.api_client import ChatClient
from community_chat.client.poller import ChatPoller
from community_chat.core.exceptions import ChatError
from community_chat.core.logging import setup_logging
from community_chat.models.room import RoomKind
from community_chat.services.unread_tracker import UnreadLedger

BASE_URL = "http://127.0.0.1:8000/api/v1/chat"

HELP = """Commands:
  /rooms                 list rooms with unread badges
  /open <n>              open room number n from /rooms
  /dm <member_id>        open (or create) a direct room
  /older                 load older messages in the open room
  /file <path>           send a file to the open room
  /edit <n> <text>       edit message number n
  /delete <n>            delete message number n
  /refresh               poll now
  /exit                  leave
Anything else is sent as a message to the open room."""


def room_title(room, viewer_id):
    if room.kind == RoomKind.DIRECT:
        others = [m for m in room.member_ids if m != viewer_id]
        return f"DM with {others[0] if others else viewer_id}"
    return f"# {room.name}"


def print_rooms(poller):
    if not poller.rooms:
        print("  (no rooms yet)")
    for i, room in enumerate(poller.rooms, start=1):
        badge = " \033[1;31m●\033[0m" if poller.unread.get(room.id) else ""
        print(f"  [{i}] {room_title(room, poller.viewer_id)}{badge}")


def print_messages(poller):
    view = poller.open_room
    if view is None:
        print("No room open. Use /rooms and /open <n>.")
        return
    if view.has_more:
        print("  ... /older for earlier messages")
    for i, msg in enumerate(view.messages, start=1):
        stamp = msg.created_at.strftime("%H:%M")
        who = msg.sender_display_name or msg.sender_id
        if msg.deleted_at:
            print(f"  {i:>3} {stamp} \033[0;90m{who}: message deleted\033[0m")
            continue
        body = msg.text or ""
        if msg.media:
            body = f"{body} [{msg.media.category}: {msg.media.original_name} {msg.media.public_url}]".strip()
        edited = " (edited)" if msg.edited_at else ""
        print(f"  {i:>3} {stamp} \033[1;34m{who}\033[0m: {body}{edited}")


async def handle(line, poller, client, args):
    cmd, _, rest = line.partition(" ")
    rest = rest.strip()

    if cmd == "/rooms":
        await poller.refresh()
        print_rooms(poller)
    elif cmd == "/open":
        index = int(rest) - 1
        if not 0 <= index < len(poller.rooms):
            print("No such room.")
            return
        await poller.open(poller.rooms[index].id)
        print_messages(poller)
    elif cmd == "/dm":
        room = await client.resolve_direct(args.user, rest)
        await poller.refresh()
        await poller.open(room.id)
        print_messages(poller)
    elif cmd == "/older":
        older = await poller.load_older()
        if not older:
            print("Nothing older.")
        print_messages(poller)
    elif cmd == "/refresh":
        await poller.refresh()
        print_messages(poller)
    elif cmd == "/file":
        path = Path(rest)
        mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        await client.send_file_message(
            poller.open_room.room_id, args.user, args.name, path.read_bytes(), path.name, mime_type
        )
        await poller.refresh()
        print_messages(poller)
    elif cmd in ("/edit", "/delete"):
        number, _, text = rest.partition(" ")
        msg = poller.open_room.messages[int(number) - 1]
        if cmd == "/edit":
            await client.edit_message(msg.id, text=text)
        else:
            await client.delete_message(msg.id)
        await poller.refresh()
        print_messages(poller)
    elif cmd.startswith("/"):
        print(HELP)
    else:
        if poller.open_room is None:
            print("Open a room first.")
            return
        await client.send_message(poller.open_room.room_id, args.user, args.name, text=line)
        await poller.refresh()
        print_messages(poller)


async def chat(args):
    print("      \033[1;36m*** COMMUNITY CHAT ***\033[0m")
    print(f"      \033[0;33mSigned in as {args.name or args.user}\033[0m\n")

    ledger = UnreadLedger(Path(args.state_dir) / f"unread-{args.user}.json")
    async with ChatClient(args.url) as client:
        poller = ChatPoller(client, args.user, ledger=ledger)
        try:
            await poller.refresh()
        except ChatError as e:
            print(f"Connection Error: {e.message}")
            return
        print_rooms(poller)
        print(f"\nUnread rooms: {ledger.total_unread(poller.rooms)}. Type /help for commands.\n")

        background = asyncio.create_task(poller.run(interval=args.interval))
        try:
            while True:
                line = (await asyncio.to_thread(input, "[\033[1;34mYOU\033[0m]: ")).strip()
                if not line:
                    continue
                if line.lower() in ["exit", "quit", "/exit"]:
                    print("Exiting chat.")
                    break
                try:
                    await handle(line, poller, client, args)
                except ChatError as e:
                    print(f"[\033[1;31mERROR\033[0m]: {e.code} - {e.message}")
                except (ValueError, IndexError, AttributeError, OSError) as e:
                    print(f"[\033[1;31mERROR\033[0m]: {e}")
        except (KeyboardInterrupt, EOFError):
            print("\nSession ended by user.")
        finally:
            poller.stop()
            await background


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Terminal client for community chat")
    parser.add_argument("--user", required=True, help="member id to chat as")
    parser.add_argument("--name", default="", help="display name shown on messages")
    parser.add_argument("--url", default=BASE_URL)
    parser.add_argument("--interval", type=float, default=10.0, help="seconds between polls")
    parser.add_argument("--state-dir", default=".chat_state")
    return parser.parse_args(argv)


if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    setup_logging()
    asyncio.run(chat(parse_args()))
