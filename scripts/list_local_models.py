#!/usr/bin/env python3
"""
Script to list the models an OpenAI-compatible endpoint offers.

Defaults to the local Ollama endpoint; pass a provider kind (openai, groq, xai,
local) as the first argument to query another one.
"""

import asyncio
import sys
from pathlib import Path

# Add the project root to Python path so we can import nexus_stream_toolkit
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables from .env file
from dotenv import load_dotenv

load_dotenv(project_root / ".env")

from nexus_stream_toolkit import AppSettings, ProviderKind, create_adapter


async def main():
    kind = ProviderKind(sys.argv[1]) if len(sys.argv) > 1 else ProviderKind.LOCAL
    adapter = create_adapter(kind, settings=AppSettings.from_env())
    try:
        print(f"Fetching available {kind.value} models...")
        models = await adapter.list_models()

        if models:
            print(f"\nFound {len(models)} models:")
            for model in sorted(models):
                print(f"  - {model}")
        else:
            print("No models found.")

    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        await adapter.aclose()


if __name__ == "__main__":
    asyncio.run(main())
