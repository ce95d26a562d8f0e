"""Manual check that the configured LLM provider accepts our credentials."""
import asyncio
import sys

from dotenv import load_dotenv

load_dotenv()

from llm import LLMError, chat_completion, llm_configured, llm_provider


async def main() -> int:
    provider = llm_provider()
    if not llm_configured():
        print(f"❌ No API key configured for LLM_PROVIDER={provider}. Check your .env file.")
        return 1

    print(f"🔄 Sending a test request to {provider}...")
    try:
        reply = await chat_completion(
            [{"role": "user", "content": 'Say "Hello, the feedback model is working!"'}],
            max_tokens=50,
        )
    except LLMError as e:
        print(f"\n❌ FAILED: {e}")
        return 1

    print("\n🎉 SUCCESS! The key is valid.")
    print(f"🤖 {provider} replied: {reply}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
