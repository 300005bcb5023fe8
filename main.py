#!/usr/bin/env python3
"""Main entry point for Adaptive Auth."""

from adaptive_auth.common.logging import get_logger
from adaptive_auth.common.config import get_config
from adaptive_auth.orchestration import build_services

logger = get_logger(__name__)


def main():
    """Main entry point."""
    config = get_config()
    evaluation, mfa = build_services(config)
    logger.info(f"Adaptive Auth initialized in {config.environment.value} mode")
    logger.info(f"Policy version: {evaluation.decision_point.policy_version}")
    logger.info(f"Delegated evaluator: {config.policy_evaluator_url or 'disabled'}")


if __name__ == "__main__":
    main()
