# rollout_engine/cli.py
"""
Command-line entry point.

Usage examples::

    rollout-engine deploy --profile single --service api --environment staging \
        --address https://api.example.com
    rollout-engine portfolio --profile portfolio --environment production \
        --service api --service web --service worker
    rollout-engine recovery <execution-id>
    rollout-engine capabilities --profile enterprise

Exit codes: 0 succeeded, 1 failed, 2 rolled back, 3 cancelled.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from rollout_engine.capabilities.definitions import Profile
from rollout_engine.capabilities.registry import registry_for_profile
from rollout_engine.container import Container
from rollout_engine.core.errors import OrchestrationError
from rollout_engine.core.models import ExecutionStatus, TargetIdentity
from rollout_engine.settings import EngineSettings

logger = logging.getLogger(__name__)

EXIT_CODES = {
    ExecutionStatus.SUCCEEDED: 0,
    ExecutionStatus.FAILED: 1,
    ExecutionStatus.ROLLED_BACK: 2,
    ExecutionStatus.CANCELLED: 3,
}

PROFILE_CHOICES = [p.value for p in Profile]


def exit_code_for(status: ExecutionStatus) -> int:
    return EXIT_CODES.get(status, 1)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rollout-engine",
        description="Phased deployment orchestration with checkpoints and rollback.",
    )
    parser.add_argument("--log-level", default=None, help="Override ROLLOUT_LOG_LEVEL.")
    parser.add_argument(
        "--memory",
        action="store_true",
        help="Keep checkpoints in memory instead of the database.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # -- deploy --------------------------------------------------------------
    deploy = subparsers.add_parser("deploy", help="Deploy one service.")
    deploy.add_argument("--profile", choices=PROFILE_CHOICES, default=Profile.SINGLE.value)
    deploy.add_argument("--service", required=True)
    deploy.add_argument("--environment", required=True)
    deploy.add_argument("--address", default="")
    deploy.add_argument("--local", action="store_true", help="Dry run against the local platform.")
    deploy.add_argument("--continue-on-error", action="store_true")
    deploy.add_argument("--execution-id", default=None, help="Resume an earlier execution.")

    # -- portfolio -----------------------------------------------------------
    portfolio = subparsers.add_parser("portfolio", help="Deploy several services in parallel.")
    portfolio.add_argument("--profile", choices=PROFILE_CHOICES, default=Profile.PORTFOLIO.value)
    portfolio.add_argument("--service", action="append", required=True, dest="services")
    portfolio.add_argument("--environment", required=True)
    portfolio.add_argument("--local", action="store_true")
    portfolio.add_argument("--continue-on-error", action="store_true")

    # -- recovery ------------------------------------------------------------
    recovery = subparsers.add_parser("recovery", help="Show how far an execution got.")
    recovery.add_argument("execution_id")

    # -- capabilities --------------------------------------------------------
    capabilities = subparsers.add_parser("capabilities", help="Print a profile's capability report.")
    capabilities.add_argument("--profile", choices=PROFILE_CHOICES, default=Profile.SINGLE.value)

    return parser


def _cmd_deploy(args: argparse.Namespace, container: Container) -> int:
    target = TargetIdentity(
        service_name=args.service,
        environment=args.environment,
        address=args.address,
        is_remote=not args.local,
    )
    orchestrator = container.orchestrator_for(args.profile, target, execution_id=args.execution_id)
    execution = orchestrator.execute(continue_on_error=args.continue_on_error)

    print(json.dumps(orchestrator.generate_execution_summary(), indent=2, default=str))
    return exit_code_for(execution.status)


def _cmd_portfolio(args: argparse.Namespace, container: Container) -> int:
    targets = [
        TargetIdentity(service_name=name, environment=args.environment, is_remote=not args.local)
        for name in args.services
    ]
    coordinator = container.portfolio_coordinator(args.profile)
    result = coordinator.run(targets, continue_on_error=args.continue_on_error)

    print(json.dumps(result.to_dict(), indent=2))
    if result.all_succeeded:
        return 0
    if result.cancelled:
        return EXIT_CODES[ExecutionStatus.CANCELLED]
    return EXIT_CODES[ExecutionStatus.FAILED]


def _cmd_recovery(args: argparse.Namespace, container: Container) -> int:
    state = container.checkpoint_store.compute_recovery_state(args.execution_id)
    print(json.dumps(state.to_dict(), indent=2))
    return 0


def _cmd_capabilities(args: argparse.Namespace, container: Container) -> int:
    print(json.dumps(registry_for_profile(args.profile).get_capability_report(), indent=2))
    return 0


COMMANDS = {
    "deploy": _cmd_deploy,
    "portfolio": _cmd_portfolio,
    "recovery": _cmd_recovery,
    "capabilities": _cmd_capabilities,
}


def main(argv: Optional[List[str]] = None, container: Optional[Container] = None) -> int:
    args = _build_parser().parse_args(argv)

    settings = EngineSettings()
    if args.memory:
        settings = settings.model_copy(update={"checkpoint_backend": "memory"})

    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    container = container or Container.from_settings(settings)

    try:
        return COMMANDS[args.command](args, container)
    except OrchestrationError as e:
        logger.error(f"❌ {type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
