"""SLA harness for the evaluation API.

Sends a mix of text and audio-URL submissions and reports latency
percentiles, success rate and token usage.

Usage:
    python scripts/evaluate_harness.py --count 30 --api-url http://localhost:8000 --token <jwt>
"""

import argparse
import asyncio
import os
import random
import sys
import time
from uuid import uuid4

# Add project root to path so we can import drill_eval
sys.path.append(os.getcwd())

from drill_eval.client import EvaluationApiClient, EvaluationApiError, PollingExhaustedError
from drill_eval.config.settings import settings
from drill_eval.utils import summarize

SAMPLE_TEXTS = [
    "I have 5 years of experience as a software engineer, specializing in full-stack development with React and Node.js.",
    "During my time at TechCorp, I led a team of 3 developers to build a new customer dashboard that reduced support tickets by 30%.",
    "I'm passionate about clean code and test-driven development. I believe in writing maintainable, scalable software.",
    "My biggest achievement was optimizing our database queries, which reduced page load time from 3 seconds to under 500ms.",
    "I'm looking for a role where I can contribute to meaningful projects and continue growing as a technical leader.",
]

SAMPLE_AUDIO_URLS = [
    "https://example.com/sample-interview-1.mp3",
    "https://example.com/sample-interview-2.mp3",
    "https://example.com/sample-interview-3.mp3",
]

P95_TARGET_MS = 10_000


def build_payload(text_ratio):
    payload = {"requestId": str(uuid4())}
    if random.random() < text_ratio:
        payload["text"] = random.choice(SAMPLE_TEXTS)
    else:
        payload["audio_url"] = random.choice(SAMPLE_AUDIO_URLS)
    return payload


async def run_one(client, text_ratio, poll):
    payload = build_payload(text_ratio)
    started = time.perf_counter()
    try:
        body = await (client.evaluate(payload) if poll else client.submit(payload))
    except (EvaluationApiError, PollingExhaustedError) as exc:
        return {"ok": False, "ms": (time.perf_counter() - started) * 1000, "error": str(exc)}
    result = body.get("result") or {}
    return {
        "ok": body.get("status") == "completed",
        "ms": (time.perf_counter() - started) * 1000,
        "status": body.get("status"),
        "tokens": result.get("tokensUsed") or 0,
    }


async def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--count", type=int, default=30)
    parser.add_argument("--api-url", default=f"http://localhost:{settings.port}")
    parser.add_argument("--token", default=os.environ.get("EVALUATION_API_TOKEN", ""))
    parser.add_argument("--text-ratio", type=float, default=0.7)
    parser.add_argument("--concurrency", type=int, default=5)
    parser.add_argument("--poll", action="store_true", help="poll deferred jobs to completion")
    args = parser.parse_args()

    if not args.token:
        print("A bearer token is required (--token or EVALUATION_API_TOKEN).")
        print("Generate one with: python scripts/issue_token.py")
        return 1

    semaphore = asyncio.Semaphore(args.concurrency)
    async with EvaluationApiClient(args.api_url, args.token, polling=settings.polling) as client:

        async def bounded():
            async with semaphore:
                return await run_one(client, args.text_ratio, args.poll)

        print(f"Sending {args.count} requests to {args.api_url} ...")
        runs = await asyncio.gather(*(bounded() for _ in range(args.count)))

    latencies = [run["ms"] for run in runs]
    completed = [run for run in runs if run["ok"]]
    stats = summarize(latencies)
    tokens = sum(run.get("tokens", 0) for run in completed)

    print("\n--- Latency (ms) ---")
    for key in ("p50", "p95", "p99", "max"):
        print(f"  {key}: {stats[key]:.2f}")
    print("\n--- Outcomes ---")
    print(f"  completed: {len(completed)}/{len(runs)} ({100 * len(completed) / max(len(runs), 1):.1f}%)")
    for run in runs:
        if run.get("error"):
            print(f"  error: {run['error']}")
    print(f"  tokens used: {tokens}")

    p95_pass = stats["p95"] < P95_TARGET_MS
    print(f"\nSLA p95 < {P95_TARGET_MS}ms: {'PASS' if p95_pass else 'FAIL'}")
    return 0 if p95_pass and completed else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
