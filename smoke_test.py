#!/usr/bin/env python3
"""
Smoke test against a running relay and Ollama.

Checks:
1. Health
2. Ollama availability
3. Simple chat
4. Streaming chat
5. Model info

Usage:
    python smoke_test.py [--url http://localhost:3001]
"""

import argparse
import asyncio
import sys

import httpx


RELAY_URL = "http://localhost:3001"


async def check_health(client: httpx.AsyncClient) -> bool:
    print("\n=== Health ===")
    try:
        resp = await client.get(f"{RELAY_URL}/api/health")
        resp.raise_for_status()
        data = resp.json()
        print(f"Status: {data.get('status')}")
        print(f"Model: {data.get('model')}")
        print(f"Ollama: {data.get('ollama_url')}")
        return True
    except httpx.HTTPError as e:
        print(f"Health check failed: {e}")
        return False


async def check_ollama(client: httpx.AsyncClient) -> bool:
    print("\n=== Ollama ===")
    try:
        resp = await client.get(f"{RELAY_URL}/api/check-ollama")
        data = resp.json()
        print(f"Ollama status: {data.get('ollama_status')}")
        if resp.status_code != 200:
            print(f"Error: {data.get('error')}")
            return False
        print(f"Configured model installed: {data.get('gemma_model_available')}")
        print(f"Models: {', '.join(data.get('available_models', [])[:5])}")
        return True
    except httpx.HTTPError as e:
        print(f"Ollama check failed: {e}")
        return False


async def check_chat(client: httpx.AsyncClient) -> bool:
    print("\n=== Simple Chat ===")
    try:
        resp = await client.post(
            f"{RELAY_URL}/api/chat",
            json={"message": "Say 'Hello from the relay' and nothing else."},
        )
        resp.raise_for_status()
        print(f"Response: {resp.json().get('response', '')[:200]}")
        return True
    except httpx.HTTPError as e:
        print(f"Chat failed: {e}")
        return False


async def check_stream(client: httpx.AsyncClient) -> bool:
    print("\n=== Streaming Chat ===")
    try:
        async with client.stream(
            "POST",
            f"{RELAY_URL}/api/chat/stream",
            json={"message": "Count from 1 to 5."},
        ) as resp:
            resp.raise_for_status()
            chunks = 0
            async for text in resp.aiter_text():
                chunks += 1
                print(text, end="", flush=True)
        print()
        print(f"Total chunks: {chunks}")
        return chunks > 0
    except httpx.HTTPError as e:
        print(f"Streaming failed: {e}")
        return False


async def check_model_info(client: httpx.AsyncClient) -> bool:
    print("\n=== Model Info ===")
    try:
        resp = await client.get(f"{RELAY_URL}/api/model-info")
        resp.raise_for_status()
        data = resp.json()
        for m in data.get("available_models", [])[:5]:
            flag = " [images]" if m.get("supports_images") else ""
            print(f"  - {m.get('name')}{flag}")
        return True
    except httpx.HTTPError as e:
        print(f"Model info failed: {e}")
        return False


async def main():
    global RELAY_URL

    parser = argparse.ArgumentParser(description="Smoke test the chat relay")
    parser.add_argument("--url", default=RELAY_URL, help="Relay base URL")
    args = parser.parse_args()
    RELAY_URL = args.url.rstrip("/")

    print("=" * 60)
    print("Chat Relay Smoke Test")
    print("=" * 60)
    print(f"Target: {RELAY_URL}")

    results = {}

    async with httpx.AsyncClient(timeout=130.0) as client:
        results["health"] = await check_health(client)

        if not results["health"]:
            print("\nRelay not running. Start with: chat-relay")
            sys.exit(1)

        results["ollama"] = await check_ollama(client)
        results["chat"] = await check_chat(client)
        results["stream"] = await check_stream(client)
        results["model_info"] = await check_model_info(client)

    # Summary
    print("\n" + "=" * 60)
    print("Results:")
    print("=" * 60)
    for name, passed in results.items():
        status = "PASS" if passed else "FAIL"
        print(f"  {name}: {status}")

    all_passed = all(results.values())
    print("=" * 60)
    print(f"Overall: {'ALL PASSED' if all_passed else 'SOME FAILED'}")

    sys.exit(0 if all_passed else 1)


if __name__ == "__main__":
    asyncio.run(main())
