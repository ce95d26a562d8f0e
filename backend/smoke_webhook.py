"""Post a simulated Retell end-of-call webhook to a running backend.

Usage: python smoke_webhook.py [backend_url]
"""
import sys
import time

import httpx

SAMPLE_TRANSCRIPT = """
Interviewer: Hello! Thank you for joining us today. Can you tell me about yourself and your experience as a Software Engineer?
Candidate: Sure! I have about 3 years of experience as a full-stack developer, mostly with React and Node.js on e-commerce platforms.
Interviewer: Can you describe a challenging project you worked on recently?
Candidate: I optimized our checkout flow. I added lazy loading, reduced bundle sizes and improved API response times, which raised completed transactions by 25%.
Interviewer: How do you handle debugging in production environments?
Candidate: I rely on error tracking and monitoring, and I write tests so most issues are caught before they reach production.
Interviewer: Great, thank you for your time today!
"""


def main() -> int:
    backend_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
    now = int(time.time())
    payload = {
        "event": "call_analyzed",
        "call": {
            "call_id": f"test_call_{now * 1000}",
            "transcript": SAMPLE_TRANSCRIPT,
            "call_duration": 420,
            "start_timestamp": now - 420,
            "retell_llm_dynamic_variables": {"job_role": "Software Engineer"},
        },
    }

    print(f"📤 Sending webhook for call {payload['call']['call_id']} to {backend_url}")
    try:
        response = httpx.post(f"{backend_url}/retell/interview-complete", json=payload, timeout=90.0)
    except httpx.RequestError as e:
        print(f"❌ Could not reach backend: {e}")
        return 1

    data = response.json()
    print(f"✅ HTTP {response.status_code}: {data}")
    if data.get("error"):
        print("⚠️ Webhook acknowledged but reconciliation failed")
        return 1

    latest = httpx.get(f"{backend_url}/interviews/latest", timeout=10.0).json()
    print("\n📝 Feedback preview:")
    print((latest.get("feedback") or "")[:300] + "...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
