"""
Case-Law Review Configuration Module
Centralized configuration for the pipeline.

Values are module-level constants. Anything that differs between machines
(API key, endpoint, output location) can be overridden through environment
variables or a .env file in the working directory.
"""

import os
from pathlib import Path
from types import MappingProxyType

import yaml
from dotenv import load_dotenv

load_dotenv()

# Debug Mode Configuration
DEBUG_MODE = os.environ.get('DEBUG', 'false').lower() == 'true'

# Application Paths
APP_NAME = "CaseLawReview"
PACKAGE_DIR = Path(__file__).parent
RESOURCES_DIR = PACKAGE_DIR / "resources"
# Logs and run artifacts go under the working directory unless overridden
APP_HOME = Path(os.environ.get('CASELAW_REVIEW_HOME', Path.cwd()))
LOGS_DIR = APP_HOME / "logs"
OUTPUT_DIR = Path(os.environ.get('CASELAW_REVIEW_OUTPUT_DIR', APP_HOME / "processed"))

# Prompt Templates (one Markdown file per model-calling stage: step0, step1, step3, step4)
PROMPTS_DIR = Path(os.environ.get('CASELAW_REVIEW_PROMPTS_DIR', RESOURCES_DIR / "prompts"))

# LLM Provider Configuration
# Any OpenAI-compatible chat completions endpoint works; the default stage
# models below are OpenRouter identifiers.
LLM_API_BASE = os.environ.get('LLM_API_BASE', "https://openrouter.ai/api/v1")
LLM_API_KEY = os.environ.get('OPENAI_API_KEY', "")
LLM_TIMEOUT_SECONDS = float(os.environ.get('LLM_TIMEOUT_SECONDS', 300))
LLM_TEMPERATURE = 0.7

# Pipeline stages (index -> display name)
STAGE_NAMES = MappingProxyType({
    0: "Legal position extraction",
    1: "Case card construction",
    2: "Case card grouping",
    3: "Review skeleton",
    4: "Final review synthesis",
})

# Model used by each stage that calls the LLM (stage 2 makes no calls)
STAGE_MODELS = MappingProxyType({
    0: "x-ai/grok-4.1-fast",
    1: "google/gemini-2.5-flash-lite-preview-09-2025",
    3: "deepseek/deepseek-v3.2",
    4: "google/gemini-2.5-flash-preview-09-2025",
})

# Substituted once when the provider reports the requested model as unavailable
FALLBACK_MODEL = "gpt-4o"

# Flex (degraded throughput) tier
# Flex requests cost half as much but may be rejected with 429 when the
# provider has no spare capacity.
USE_FLEX_TIER = os.environ.get('USE_FLEX_TIER', 'false').lower() == 'true'
FLEX_MAX_ATTEMPTS = 3
FLEX_RETRY_DELAYS_SECONDS = (2.0, 4.0, 8.0)

# Concurrency
# Upper bound on simultaneous per-document LLM calls within one stage
MAX_CONCURRENT_CALLS = int(os.environ.get('MAX_CONCURRENT_CALLS', 10))
# Wall-clock budget for a whole run (seconds); None disables the limit
_run_timeout = os.environ.get('RUN_TIMEOUT_SECONDS', "300")
RUN_TIMEOUT_SECONDS = float(_run_timeout) if _run_timeout else None

# Logging Configuration
LOG_FILE = LOGS_DIR / "processing.log"
DEBUG_LOG_FILE = LOGS_DIR / "debug_flow.txt"
LOG_FORMAT = "[%(levelname)s %(asctime)s] %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

# --- Pricing Table ---
# USD per 1M tokens, keyed by tier then model.
PRICING_CONFIG_FILE = RESOURCES_DIR / "pricing.yaml"
DEFAULT_PRICING_MODEL = "gpt-5.1"

_BUILTIN_PRICING = {
    'standard': {
        'gpt-5-mini': {'input': 0.25, 'cached_input': 0.025, 'output': 2.0},
        'gpt-5': {'input': 1.25, 'cached_input': 0.125, 'output': 10.0},
        'gpt-5.1': {'input': 1.25, 'cached_input': 0.125, 'output': 10.0},
        'gpt-4o': {'input': 2.5, 'cached_input': 1.25, 'output': 10.0},
    },
    'flex': {
        'gpt-5-mini': {'input': 0.125, 'cached_input': 0.0125, 'output': 1.0},
        'gpt-5': {'input': 0.625, 'cached_input': 0.0625, 'output': 5.0},
        'gpt-5.1': {'input': 0.625, 'cached_input': 0.0625, 'output': 5.0},
        'gpt-4o': {'input': 1.25, 'cached_input': 0.625, 'output': 5.0},
    },
}


def load_pricing(path: Path = PRICING_CONFIG_FILE) -> MappingProxyType:
    """
    Load the (tier, model) price table from YAML.

    Falls back to the built-in table when the file does not exist. A file
    that exists but cannot be parsed is a configuration error and raises.

    Args:
        path: Location of the pricing YAML file.

    Returns:
        Read-only mapping: tier -> model -> {input, cached_input, output}
    """
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        tiers = data.get('pricing', {})
    except FileNotFoundError:
        tiers = _BUILTIN_PRICING

    frozen = {}
    for tier, models in tiers.items():
        frozen[tier] = MappingProxyType({
            model: MappingProxyType({
                'input': float(prices.get('input', 0.0)),
                'cached_input': float(prices.get('cached_input', 0.0)),
                'output': float(prices.get('output', 0.0)),
            })
            for model, prices in models.items()
        })
    return MappingProxyType(frozen)


MODEL_PRICING = load_pricing()
# --- End Pricing Table ---
