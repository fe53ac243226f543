"""
Command-line interface for the crate staleness checker.
"""

import argparse
import logging
import sys
from pathlib import Path

from .analyzer import StalenessAnalyzer, extract_dependencies, find_outdated
from .config import CheckerConfig
from .exceptions import InvalidInputError
from .manifests import CargoMetadataIntrospector, TomlManifestIntrospector
from .reporting import (
    export_report_csv,
    format_package_list,
    parse_package_list,
    print_summary,
    save_report_json,
)
from .resolvers import CratesIoRegistry, ResolverCache


logger = logging.getLogger(__name__)

EXIT_INVALID_INPUT = 1
EXIT_OUTDATED = 2


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--introspector",
        choices=["cargo", "toml"],
        default="cargo",
        help="How to read manifests: run `cargo metadata` or parse Cargo.toml/Cargo.lock. Default: cargo"
    )
    common.add_argument("--cargo", dest="cargo_bin", default=None, help="Path to the cargo binary")
    common.add_argument("--registry-url", default=None, help="Crates API base URL")
    common.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-lookup timeout in seconds for registry requests"
    )
    common.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Number of packages checked concurrently (1 = sequential)"
    )
    common.add_argument("--progress", action="store_true", help="Show a progress bar on stderr")
    common.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level for stderr diagnostics; INFO also prints the check summary. "
             "Default: WARNING"
    )

    parser = argparse.ArgumentParser(
        prog="crate-staleness",
        description="Find upstream crates used by a downstream project that are behind the registry"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    get_libs = subparsers.add_parser(
        "get-libs",
        parents=[common],
        help="Print the upstream packages used as dependencies downstream, as `a;b;`"
    )
    get_libs.add_argument("upstream_manifest", help="Upstream Cargo.toml path")
    get_libs.add_argument("downstream_manifest", help="Downstream Cargo.toml path")

    get_outdated = subparsers.add_parser(
        "get-outdated-libs",
        parents=[common],
        help="Print which of the given packages are outdated, as `a;b;`"
    )
    get_outdated.add_argument("packages", help="Package names separated by ';'")
    get_outdated.add_argument("downstream_manifest", help="Downstream Cargo.toml path")

    check = subparsers.add_parser(
        "check",
        parents=[common],
        help="Run get-libs and get-outdated-libs in one go"
    )
    check.add_argument("upstream_manifest", help="Upstream Cargo.toml path")
    check.add_argument("downstream_manifest", help="Downstream Cargo.toml path")
    check.add_argument(
        "--output-dir",
        default=None,
        help="Also write staleness_report.json and staleness_report.csv to this directory"
    )
    check.add_argument(
        "--fail-on-outdated",
        action="store_true",
        help=f"Exit with status {EXIT_OUTDATED} when any package is outdated"
    )
    return parser


def _make_introspector(kind: str, config: CheckerConfig):
    if kind == "toml":
        return TomlManifestIntrospector()
    return CargoMetadataIntrospector(config)


def main(argv=None) -> int:
    """Main entry point for the CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = CheckerConfig.from_env(
            registry_url=args.registry_url,
            timeout=args.timeout,
            max_workers=args.max_workers,
            cargo_bin=args.cargo_bin,
            show_progress=args.progress or None,
        )
        introspector = _make_introspector(args.introspector, config)

        if args.command == "get-libs":
            packages = extract_dependencies(
                args.upstream_manifest, args.downstream_manifest, introspector
            )
            print(format_package_list(packages))
            return 0

        if args.command == "get-outdated-libs":
            cache = ResolverCache()
            try:
                outdated = find_outdated(
                    parse_package_list(args.packages),
                    args.downstream_manifest,
                    registry=CratesIoRegistry(config, cache),
                    introspector=introspector,
                    config=config,
                )
            finally:
                cache.close()
            print(format_package_list(outdated))
            return 0

        with StalenessAnalyzer(
            args.upstream_manifest,
            args.downstream_manifest,
            config=config,
            introspector=introspector,
        ) as analyzer:
            report = analyzer.analyze()
    except InvalidInputError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID_INPUT

    print_summary(report)
    print(format_package_list(report.outdated))
    if args.output_dir:
        output_dir = Path(args.output_dir)
        logger.info("Report saved to: %s", save_report_json(report, output_dir))
        csv_file = export_report_csv(report, output_dir)
        if csv_file:
            logger.info("Records saved to: %s", csv_file)

    if args.fail_on_outdated and report.outdated:
        return EXIT_OUTDATED
    return 0


if __name__ == "__main__":
    sys.exit(main())
