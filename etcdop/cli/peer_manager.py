#!/usr/bin/env python3
"""
CLI tool for operating the EtcdPeer controller

Usage:
    python -m etcdop.cli.peer_manager --help
    python -m etcdop.cli.peer_manager status --name one --namespace default
    python -m etcdop.cli.peer_manager reconcile --name one --namespace default
    python -m etcdop.cli.peer_manager resync --namespace default
    python -m etcdop.cli.peer_manager watch --scheduler celery
"""

import argparse
import json
import logging
import sys

from etcdop.config import settings

logger = logging.getLogger(__name__)


def _create_store():
    from etcdop.store.kubernetes_store import create_kubernetes_store

    return create_kubernetes_store(settings.kubeconfig, settings.in_cluster)


def _create_reconciler(store):
    from etcdop.peer.reconciler import PeerReconciler

    return PeerReconciler(store, timeout=settings.reconcile_timeout_seconds, image=settings.etcd_image)


def show_peer_status(store, name: str, namespace: str):
    """Print the collected state and the action a pass would take, without acting"""
    from etcdop.peer.collector import StateCollector
    from etcdop.peer.decision import decide
    from etcdop.store.base import PeerKey
    from etcdop.utils.deadline import Deadline

    key = PeerKey(namespace=namespace, name=name)
    state = StateCollector(store, settings.etcd_image).get_state(
        key, Deadline.after(settings.reconcile_timeout_seconds)
    )
    status = state.to_dict()
    status["next_action"] = decide(state).describe()
    print(json.dumps(status, indent=2, ensure_ascii=False))
    return status


def run_reconciliation(store, name: str, namespace: str):
    """Run a single reconciliation pass"""
    from etcdop.store.base import PeerKey

    result = _create_reconciler(store).reconcile(PeerKey(namespace=namespace, name=name))
    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return result


def run_resync(store, namespace: str = None):
    """Reconcile every peer once"""
    from etcdop.store.base import ObjectKind, object_key
    from etcdop.utils.deadline import Deadline

    reconciler = _create_reconciler(store)
    peers = store.list(ObjectKind.PEER, namespace, Deadline.after(settings.reconcile_timeout_seconds))
    failed = 0
    for manifest in peers:
        result = reconciler.reconcile(object_key(manifest))
        print(json.dumps(result.to_dict(), ensure_ascii=False))
        if result.failed:
            failed += 1
    logger.info(f"Resync finished: {len(peers)} peers, {failed} failed")
    return failed


def run_watcher(store, scheduler_type: str, namespace: str = None):
    from etcdop.controller.watcher import PeerWatcher
    from etcdop.tasks.scheduler import create_reconcile_scheduler

    reconciler = _create_reconciler(store) if scheduler_type == "local" else None
    scheduler = create_reconcile_scheduler(scheduler_type, reconciler)
    PeerWatcher(store, scheduler, namespace).run_forever()


def main(argv=None):
    parser = argparse.ArgumentParser(description="EtcdPeer controller CLI")
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    status_parser = subparsers.add_parser("status", help="Show peer state and the next action")
    status_parser.add_argument("--name", required=True, help="EtcdPeer name")
    status_parser.add_argument("--namespace", default="default", help="EtcdPeer namespace")

    reconcile_parser = subparsers.add_parser("reconcile", help="Run one reconciliation pass")
    reconcile_parser.add_argument("--name", required=True, help="EtcdPeer name")
    reconcile_parser.add_argument("--namespace", default="default", help="EtcdPeer namespace")

    resync_parser = subparsers.add_parser("resync", help="Reconcile every peer once")
    resync_parser.add_argument("--namespace", default=settings.watch_namespace, help="Namespace (default: all)")

    watch_parser = subparsers.add_parser("watch", help="Watch peers and reconcile on every change")
    watch_parser.add_argument("--scheduler", choices=["local", "celery"], default="celery", help="Where passes run")
    watch_parser.add_argument("--namespace", default=settings.watch_namespace, help="Namespace (default: all)")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(), format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if not args.command:
        parser.print_help()
        return 1

    try:
        store = _create_store()
        if args.command == "status":
            show_peer_status(store, args.name, args.namespace)
        elif args.command == "reconcile":
            if run_reconciliation(store, args.name, args.namespace).failed:
                return 1
        elif args.command == "resync":
            if run_resync(store, args.namespace):
                return 1
        elif args.command == "watch":
            run_watcher(store, args.scheduler, args.namespace)
        else:
            print(f"Unknown command: {args.command}")
            return 1
    except Exception as e:
        logger.error(f"Command failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
