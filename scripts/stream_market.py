#!/usr/bin/env python3
"""
Terminal client: stream Huobi market data through HuobiStreamClient.
Usage:
  python scripts/stream_market.py
  python scripts/stream_market.py --stream market.ethusdt.trade.detail
  python scripts/stream_market.py --stream market.btcusdt.kline.1min --stream market.ethusdt.kline.1min
  python scripts/stream_market.py --req market.btcusdt.detail
  python scripts/stream_market.py --no-reconnect --verbose
"""
import argparse
import asyncio
import json
import sys

from huobi_stream import ContractViolation, HuobiStreamClient, Settings
from huobi_stream.utils.logging import setup_logging

DEFAULT_STREAMS = ["market.btcusdt.trade.detail"]


def print_event(event: dict) -> None:
    channel = event.get("ch") or event.get("rep")
    if channel:
        payload = event.get("tick") or event.get("data")
        text = json.dumps(payload)
        print(f"[{channel}]", text[:120] + "..." if len(text) > 120 else text, flush=True)
    elif "subbed" in event:
        print("[SUBSCRIBE]", event.get("status"), event.get("subbed"), flush=True)
    else:
        print(json.dumps(event)[:200], flush=True)


async def run(streams: list[str], req: str, settings: Settings) -> None:
    client = HuobiStreamClient(settings=settings)

    if req:
        done = asyncio.Event()

        def on_reply(event: dict) -> None:
            print_event(event)
            done.set()

        client.request_once({"req": req}, on_reply)
        await done.wait()
        await client.close()
        return

    if len(streams) == 1:
        key = client.subscribe(streams[0], print_event, reconnect=settings.HUOBI_RECONNECT)
    else:
        key = client.subscribe_combined(streams, print_event, reconnect=settings.HUOBI_RECONNECT)
    print(f"Streaming {streams} on {settings.ws_url} (key {key})", flush=True)

    try:
        await asyncio.Event().wait()
    finally:
        await client.close()


def main():
    p = argparse.ArgumentParser(description="Huobi push-feed terminal client")
    p.add_argument("--stream", action="append", dest="streams", help="Stream name (repeat for a combined socket)")
    p.add_argument("--req", help="Send one request (e.g. market.btcusdt.detail) and print the reply")
    p.add_argument("--hadax", action="store_true", help="Use the HADAX host")
    p.add_argument("--reconnect", action="store_true", default=True, help="Reconnect after organic closes (default)")
    p.add_argument("--no-reconnect", action="store_false", dest="reconnect", help="Exit streams on close")
    p.add_argument("--verbose", action="store_true", help="Log connection lifecycle details")
    args = p.parse_args()

    settings = Settings(HUOBI_HADAX=args.hadax, HUOBI_RECONNECT=args.reconnect, HUOBI_VERBOSE=args.verbose)
    setup_logging(settings)

    try:
        asyncio.run(run(args.streams or DEFAULT_STREAMS, args.req, settings))
    except ContractViolation as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
