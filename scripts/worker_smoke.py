"""
Worker smoke test: drive a WorkerSession end to end.

Loads a model, runs one inference, one embedding and one streaming request,
then unloads, printing every response. Uses the simulated engine unless
INFERENCE_WORKER_ENGINE=openai and OPENAI_BASE_URL are set in .env.

Run:
    python scripts/worker_smoke.py
    python scripts/worker_smoke.py --model llama3.1:8b --latency-scale 0.1
"""

import argparse
import asyncio
import sys

from inference_worker.config import WorkerConfig
from inference_worker.engines.factory import EngineFactory
from inference_worker.transport.transports import QueueTransport
from inference_worker.utils.logging_config import setup_logging
from inference_worker.worker.session import WorkerSession


def _print_responses(transport: QueueTransport) -> list:
    responses = transport.drain_outbound()
    for response in responses:
        if response["success"]:
            data = response.get("data", {})
            if response["kind"] == "streamChunk":
                continue
            print(f"   [OK] {response['kind']}: {data}")
        else:
            print(f"   [FAIL] {response['error']['code']}: {response['error']['message']}")
    return responses


async def run_smoke(config: WorkerConfig, model: str) -> bool:
    print("=" * 60)
    print(f"Worker smoke test (engine={config.engine}, model={model})")
    print("=" * 60)

    engine = EngineFactory(config).create_from_config()
    transport = QueueTransport()
    ok = True

    async with WorkerSession(engine, transport, config) as session:
        print("\n[1/5] Loading model...")
        await session.on_receive({"kind": "loadModel", "correlationId": "load", "modelPath": model})
        ok &= all(r["success"] for r in _print_responses(transport))
        print(f"   Status: {session.get_status()}")

        print("\n[2/5] Inference...")
        await session.on_receive({"kind": "inference", "correlationId": "infer", "prompt": "What is 2+2?"})
        ok &= all(r["success"] for r in _print_responses(transport))

        print("\n[3/5] Embedding...")
        await session.on_receive({"kind": "embedding", "correlationId": "embed", "text": "hello world"})
        responses = transport.drain_outbound()
        for response in responses:
            if response["success"]:
                print(f"   [OK] dimension={response['data']['dimension']}")
            else:
                ok = False
                print(f"   [FAIL] {response['error']['code']}: {response['error']['message']}")

        print("\n[4/5] Streaming inference...")
        await session.on_receive({"kind": "streamInference", "correlationId": "stream", "prompt": "Say hello"})
        chunks = transport.drain_outbound()
        text = "".join(c["data"]["content"] for c in chunks if c["success"])
        final = chunks[-1] if chunks else None
        if final and final["success"] and final["data"]["isComplete"]:
            print(f"   [OK] {len(chunks)} chunks: {text!r}")
            print(f"   Usage: {final['data']['usage']}")
        else:
            ok = False
            print(f"   [FAIL] stream did not complete: {final}")

        print("\n[5/5] Unloading model...")
        await session.on_receive({"kind": "unloadModel", "correlationId": "unload"})
        ok &= all(r["success"] for r in _print_responses(transport))

    print("\n" + "=" * 60)
    print("[OK] All steps passed" if ok else "[FAIL] Some steps failed")
    print("=" * 60)
    return ok


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--model", default="models/demo", help="model path or id to load")
    parser.add_argument("--latency-scale", type=float, default=0.05)
    args = parser.parse_args()

    setup_logging("WARNING")
    config = WorkerConfig.from_env(latency_scale=args.latency_scale)
    return 0 if asyncio.run(run_smoke(config, args.model)) else 1


if __name__ == "__main__":
    sys.exit(main())
