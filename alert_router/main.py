"""Main entry point for the alert router"""

import sys
import argparse

from alert_router import __version__
from alert_router.alerts.alert_rule import load_alert_rules
from alert_router.config.routing import load_routing_config
from alert_router.config.settings import load_config
from alert_router.errors import ConfigError
from alert_router.utils.logger import setup_logger


def parse_args(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description='Alert Router: groups, inhibits and routes alert notifications'
    )

    parser.add_argument(
        '--config',
        '-c',
        type=str,
        default=None,
        help='Path to service configuration file (YAML)'
    )

    parser.add_argument(
        '--routing-config',
        '-r',
        type=str,
        default=None,
        help='Path to routing configuration file (Alertmanager YAML format)'
    )

    parser.add_argument(
        '--log-level',
        '-l',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default=None,
        help='Override log level'
    )

    parser.add_argument(
        '--check-config',
        action='store_true',
        help='Validate the configuration and routing files, then exit'
    )

    parser.add_argument(
        '--check-rules',
        type=str,
        metavar='FILE',
        default=None,
        help='Validate a Prometheus alerting rules file, then exit'
    )

    parser.add_argument(
        '--version',
        '-v',
        action='version',
        version=f'Alert Router v{__version__}'
    )

    return parser.parse_args(argv)


def check_rules(rules_file: str) -> int:
    """Validate a rules file and report what it contains"""
    try:
        rules = load_alert_rules(rules_file)
    except (FileNotFoundError, ValueError) as e:
        print(f"Rules check failed: {e}", file=sys.stderr)
        return 1

    for rule in rules:
        print(f"  {rule.group}/{rule.name} (severity={rule.severity or 'none'}, for={rule.for_duration:g}s)")
    print(f"SUCCESS: {len(rules)} alerting rules found in {rules_file}")
    return 0


def main(argv=None):
    """Main entry point"""
    args = parse_args(argv)

    if args.check_rules:
        return check_rules(args.check_rules)

    try:
        # Load configuration
        config = load_config(args.config)

        # Override from command line
        if args.log_level:
            config['router']['log_level'] = args.log_level
        if args.routing_config:
            config['router']['routing_file'] = args.routing_config

        if args.check_config:
            routing = load_routing_config(config['router']['routing_file'],
                                          config['router'].get('external_url', ''))
            print(
                f"SUCCESS: {routing.source} is valid: "
                f"{sum(1 for _ in routing.route.walk())} routes, "
                f"{len(routing.receivers)} receivers, {len(routing.inhibit_rules)} inhibit rules"
            )
            return 0

        # Setup logger
        logger = setup_logger(config)
        logger.info("=" * 60)
        logger.info(f"Alert Router v{__version__}")
        logger.info("=" * 60)

        if args.config:
            logger.info(f"Loaded configuration from: {args.config}")
        else:
            logger.info("Using default configuration")

        from alert_router.service import AlertRouterService

        # Create and start service
        service = AlertRouterService(config)
        service.start()

        return 0

    except (ConfigError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
