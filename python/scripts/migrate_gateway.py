#!/usr/bin/env python3
"""
Migrate a legacy gateway configuration from consul/etcd into the new gateway.

The legacy proxy stored clusters, servers, binds and APIs as JSON under a key
prefix in consul or etcd. This script reads them and recreates each entity
through the new gateway's admin API, translating cluster names and server
addresses to the identifiers the API server assigns.

Workflow:
1. Read the legacy proxy config file (registry address and key prefix)
2. Migrate clusters, recording name -> new cluster id
3. Migrate servers, recording address -> new server id
4. Migrate binds, skipping any that name an unknown cluster or server
5. Migrate APIs, skipping dispatch nodes that name an unknown cluster
6. Write a migration report

Any registry, decode or commit failure aborts the run. Entities committed
before the failure stay in the new gateway; nothing is rolled back.

Usage examples:
  # Migrate from consul into the API server on the default address
  python migrate_gateway.py --old /etc/gateway/proxy.json

  # Migrate into a remote API server
  python migrate_gateway.py --addr-api 10.0.0.5:9092 --old proxy.json

  # Show what would be committed without touching the new gateway
  python migrate_gateway.py --old proxy.json --dry-run
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

# Add parent directory to path for imports
_parent_dir = Path(__file__).parent.parent.absolute()
if str(_parent_dir) not in sys.path:
    sys.path.insert(0, str(_parent_dir))

from adminapi.client import AdminClient, APIBuilder, DryRunAdminClient, ServerBuilder
from adminapi.metapb import MAX_QPS_UNLIMITED, LoadBalance, Source, seconds
from legacy.models import API, Server
from legacy.store import LegacyStore, get_store_from
from utils.config_manager import config_manager, load_legacy_config
from utils.error_utils import (
    CommitError,
    LegacyDecodeError,
    MigrationError,
    RegistryReadError,
    create_admin_api_error,
    create_legacy_decode_error,
    create_registry_connection_error,
)
from utils.id_maps import UNRESOLVED, IdentifierMap
from utils.logging_utils import get_logger, log_banner, log_exception, setup_logging
from utils.report_utils import save_json

logger = get_logger(__name__)

# Legacy API status codes
LEGACY_STATUS_UP = 1
LEGACY_STATUS_DOWN = 2

# Legacy validation source code for form fields; everything else is the query string
LEGACY_GET_FROM_FORM = 1


class GatewayMigrator:
    """Runs the migration phases against one legacy store and one admin client."""

    def __init__(self, store: LegacyStore, client: AdminClient):
        self.store = store
        self.client = client
        self.logger = get_logger(self.__class__.__name__)
        self.results: Dict[str, Dict[str, int]] = {}
        self.skipped_binds: List[Dict[str, str]] = []
        self.skipped_nodes: List[Dict[str, str]] = []

    def _load(self, kind: str, list_fn: Callable[[], List[Any]]) -> List[Any]:
        try:
            olds = list_fn()
        except RegistryReadError as e:
            raise create_registry_connection_error(self.store.addr, e.__cause__ or e) from e
        except LegacyDecodeError as e:
            raise create_legacy_decode_error(self.store.addr, e) from e
        self.logger.info(f"migrate {kind} started")
        self.logger.info(f"load {len(olds)} {kind}")
        return olds

    def _commit(self, entity: Any, commit_fn: Callable[[], Any]) -> Any:
        try:
            return commit_fn()
        except CommitError as e:
            self.logger.error(f"migrate old {type(entity).__name__.lower()}<{entity}> failed: {e}")
            raise create_admin_api_error(self.client.addr, entity, e) from e

    def _finish(self, kind: str, loaded: int, committed: int, skipped: int = 0) -> None:
        self.results[kind] = {"loaded": loaded, "committed": committed, "skipped": skipped}
        self.logger.info(f"migrate {kind} completed: {committed} committed, {skipped} skipped")

    def migrate_clusters(self) -> IdentifierMap:
        """Recreate every legacy cluster and return the name -> id map.

        The legacy load-balancing strategy is not carried over; every cluster
        is created with round robin.
        """
        olds = self._load("clusters", self.store.get_clusters)
        cluster_ids = IdentifierMap("cluster")

        for c in olds:
            builder = self.client.new_cluster_builder().name(c.name).loadbalance(LoadBalance.ROUND_ROBIN)
            cluster_ids.record(c.name, self._commit(c, builder.commit))

        self._finish("clusters", len(olds), len(olds))
        return cluster_ids

    def build_server(self, s: Server) -> ServerBuilder:
        sb = self.client.new_server_builder().addr(s.addr)
        sb.max_qps(MAX_QPS_UNLIMITED if s.max_qps == 0 else s.max_qps)

        if s.check_path and not s.check_responsed_body:
            sb.check_http_code(s.check_path, seconds(s.check_duration), seconds(s.check_timeout))
        elif s.check_path and s.check_responsed_body:
            sb.check_http_body(
                s.check_path, s.check_responsed_body, seconds(s.check_duration), seconds(s.check_timeout)
            )

        # external servers are health-checked by their own discovery
        if s.external:
            sb.no_health_check()

        if s.has_circuit_breaker:
            sb.circuit_breaker_half_traffic_rate(s.half_traffic_rate)
            sb.circuit_breaker_check_period(seconds(s.half_to_open_collect_seconds))
            sb.circuit_breaker_close_to_half_timeout(seconds(s.half_to_open_seconds))
            sb.circuit_breaker_half_to_close_condition(s.open_to_close_failure_rate)
            sb.circuit_breaker_half_to_open_condition(s.half_to_open_succeed_rate)

        return sb

    def migrate_servers(self) -> IdentifierMap:
        """Recreate every legacy server and return the address -> id map."""
        olds = self._load("servers", self.store.get_servers)
        server_ids = IdentifierMap("server")

        for s in olds:
            server_ids.record(s.addr, self._commit(s, self.build_server(s).commit))

        self._finish("servers", len(olds), len(olds))
        return server_ids

    def migrate_binds(self, cluster_ids: IdentifierMap, server_ids: IdentifierMap) -> int:
        """Bind migrated servers to migrated clusters.

        A bind naming a cluster or server that was not migrated is logged and
        skipped. Returns the number of binds committed.
        """
        olds = self._load("binds", self.store.get_binds)
        committed = 0

        for b in olds:
            cluster_id = cluster_ids.resolve(b.cluster_name)
            server_id = server_ids.resolve(b.server_addr)
            if cluster_id == UNRESOLVED or server_id == UNRESOLVED:
                self.logger.warning(f"migrate old bind<{b}> failed, missing cluster or server")
                self.skipped_binds.append({"cluster_name": b.cluster_name, "server_addr": b.server_addr})
                continue

            self._commit(b, lambda: self.client.add_bind(cluster_id, server_id))
            committed += 1

        self._finish("binds", len(olds), committed, len(olds) - committed)
        return committed

    def build_api(self, a: API, cluster_ids: IdentifierMap) -> APIBuilder:
        ab = (
            self.client.new_api_builder()
            .name(a.name)
            .match_url_pattern(a.url)
            .match_method(a.method)
            .match_domain(a.domain)
        )

        if a.status == LEGACY_STATUS_UP:
            ab.up()
        elif a.status == LEGACY_STATUS_DOWN:
            ab.down()

        if a.access_control is not None:
            ab.add_whitelist(*a.access_control.whitelist)
            ab.add_blacklist(*a.access_control.blacklist)

        if a.mock is not None:
            ab.default_value(a.mock.value.encode("utf-8"))
            for h in a.mock.headers:
                ab.add_default_value_header(h.name, h.value)
            ab.add_default_value_header("Content-Type", a.mock.content_type)

        for n in a.nodes:
            cluster_id = cluster_ids.resolve(n.cluster_name)
            if cluster_id == UNRESOLVED:
                self.logger.warning(f"migrate old api<{a}> failed, missing cluster {n.cluster_name}")
                self.skipped_nodes.append({"api": a.name, "cluster_name": n.cluster_name})
                continue

            ab.add_dispatch_node(cluster_id)
            if n.attr_name:
                ab.dispatch_node_value_attr_name(cluster_id, n.attr_name)
            if n.rewrite:
                ab.dispatch_node_url_rewrite(cluster_id, n.rewrite)

            for v in n.validations:
                source = Source.FORM_DATA if v.get_from == LEGACY_GET_FROM_FORM else Source.QUERY_STRING
                for r in v.rules:
                    ab.add_dispatch_node_validation(cluster_id, (v.attr, source), r.expression, v.required)

        return ab

    def migrate_apis(self, cluster_ids: IdentifierMap) -> int:
        """Recreate every legacy API; returns the number committed."""
        olds = self._load("apis", self.store.get_apis)
        skipped_before = len(self.skipped_nodes)

        for a in olds:
            self._commit(a, self.build_api(a, cluster_ids).commit)

        self._finish("apis", len(olds), len(olds))
        self.results["apis"]["skipped_nodes"] = len(self.skipped_nodes) - skipped_before
        return len(olds)

    def run(self) -> Dict[str, Dict[str, int]]:
        """Run all phases in order and return the per-phase counters."""
        cluster_ids = self.migrate_clusters()
        server_ids = self.migrate_servers()
        self.migrate_binds(cluster_ids, server_ids)
        self.migrate_apis(cluster_ids)
        return self.results

    def build_report(self, **metadata: Any) -> Dict[str, Any]:
        return {
            "summary": self.results,
            "skipped": {"binds": self.skipped_binds, "dispatch_nodes": self.skipped_nodes},
            "metadata": dict(metadata, timestamp=datetime.now().isoformat()),
        }


def parse_arguments(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Migrate a legacy gateway configuration from consul/etcd into the new gateway",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Migrate into the API server on the default address
  python migrate_gateway.py --old /etc/gateway/proxy.json

  # Migrate into a remote API server
  python migrate_gateway.py --addr-api 10.0.0.5:9092 --old proxy.json

  # Dry run: log every entity instead of committing it
  python migrate_gateway.py --old proxy.json --dry-run

  # Show the effective tool configuration (config.yaml + environment)
  python migrate_gateway.py --show-config

The legacy config file is JSON naming the registry and key prefix:
  {"registryAddr": "etcd://10.0.0.1:2379,10.0.0.2:2379", "prefix": "/gateway"}
        """,
    )

    parser.add_argument(
        "--addr-api",
        help="Address of the new gateway API server (default: from config, 127.0.0.1:9092)",
    )

    parser.add_argument(
        "--old",
        help="Legacy gateway proxy config file (default: LEGACY_CONFIG_FILE or legacy.config_file in config)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log the entities that would be committed without contacting the API server",
    )

    parser.add_argument(
        "--output",
        help="Output file for the migration report (default: reports/gateway-migration-report.json)",
    )

    parser.add_argument(
        "--show-config",
        action="store_true",
        help="Print the current tool configuration and exit",
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    setup_logging()
    args = parse_arguments(argv)

    # Show configuration if requested
    if args.show_config:
        config_manager.print_config()
        sys.exit(0)

    addr_api = args.addr_api or config_manager.get_admin_api_addr()
    old_cfg = args.old or config_manager.get_legacy_config_file()
    output_file = args.output or config_manager.get_migration_report_path()

    if not old_cfg:
        logger.error("A legacy config file is required: pass --old or set LEGACY_CONFIG_FILE")
        sys.exit(1)

    store = None
    client = None
    try:
        cfg = load_legacy_config(old_cfg)

        log_banner(logger, "GATEWAY MIGRATION - DRY RUN MODE" if args.dry_run else "GATEWAY MIGRATION")
        logger.info(f"Legacy registry: {cfg.registry_addr}")
        logger.info(f"Legacy prefix:   {cfg.prefix}")
        logger.info(f"Admin API:       {addr_api}")
        logger.info("")

        store = get_store_from(cfg.registry_addr, cfg.prefix)
        timeout = config_manager.get_admin_api_timeout()
        if args.dry_run:
            client = DryRunAdminClient(addr_api, timeout=timeout)
        else:
            client = AdminClient(addr_api, timeout=timeout)

        migrator = GatewayMigrator(store, client)
        results = migrator.run()

        report = migrator.build_report(
            registry_addr=cfg.registry_addr,
            prefix=cfg.prefix,
            admin_api=addr_api,
            dry_run=args.dry_run,
        )
        save_json(output_file, report)

        logger.info("")
        log_banner(logger, "DRY RUN MIGRATION SUMMARY" if args.dry_run else "MIGRATION SUMMARY")
        for kind, counts in results.items():
            line = f"{kind:<9} loaded {counts['loaded']}, committed {counts['committed']}"
            if counts.get("skipped"):
                line += f", skipped {counts['skipped']}"
            if counts.get("skipped_nodes"):
                line += f", skipped dispatch nodes {counts['skipped_nodes']}"
            logger.info(line)
        logger.info(f"Report saved to: {output_file}")

        if args.dry_run:
            logger.info("No changes were made. Run without --dry-run to execute the migration.")
        logger.info("migrate complete.")

    except KeyboardInterrupt:
        logger.warning("Migration interrupted by user")
        logger.warning("Entities committed so far remain in the new gateway")
        sys.exit(1)
    except MigrationError as e:
        logger.error(f"Migration failed: {e}")
        sys.exit(1)
    except Exception as e:
        log_exception(logger, "Unexpected error in migration", exc_info=e)
        sys.exit(1)
    finally:
        if client is not None:
            client.close()
        if store is not None:
            store.close()


if __name__ == "__main__":
    main()
