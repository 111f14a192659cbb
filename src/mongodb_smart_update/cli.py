import sys
import time
import argparse
from dataclasses import replace

from . import load_from_env, setup_logging, SmartUpdateOrchestrator
from .exceptions import SmartUpdateError


def _run_once(orch: SmartUpdateOrchestrator, command: str, logger) -> bool:
    if command == 'update':
        return orch.run()
    try:
        converged = orch.check_convergence()
    except SmartUpdateError as e:
        logger.error("Convergence check failed", error=str(e), error_type=type(e).__name__)
        return False
    logger.info("Convergence checked", cluster=orch.cfg.cluster_name, converged=converged)
    return converged


def main(argv=None):
    parser = argparse.ArgumentParser(prog='mongodb-smart-update')
    parser.add_argument('command', choices=['update', 'converged'], help='Run one update pass or report convergence')
    parser.add_argument('--cluster', help='Cluster resource name (overrides CLUSTER_NAME)')
    parser.add_argument('--namespace', help='Namespace (overrides NAMESPACE)')
    parser.add_argument('--interval', type=float, default=0,
                        help='Repeat the command every N seconds until interrupted')
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    cfg = load_from_env()
    if args.cluster:
        cfg = replace(cfg, cluster_name=args.cluster, users_secret=f'{args.cluster}-secrets')
    if args.namespace:
        cfg = replace(cfg, namespace=args.namespace)

    logger = setup_logging('smart-update', cluster=cfg.cluster_name, namespace=cfg.namespace)
    orch = SmartUpdateOrchestrator(cfg=cfg, logger=logger)

    ok = _run_once(orch, args.command, logger)
    while args.interval > 0:
        try:
            time.sleep(args.interval)
        except KeyboardInterrupt:
            break
        ok = _run_once(orch, args.command, logger)
    sys.exit(0 if ok else 1)


if __name__ == '__main__':
    main()
