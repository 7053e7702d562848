"""
log-dos-finder command line.

Detect cases in log files where the same IP performed a given number of
requests on the same URL within a certain time, or a given number of
requests on any URL within a certain time.
"""

import argparse
import json
import sys

from .config import LOG_FORMATS, LOG_JSON, load_config
from .errors import ConfigurationError, FatalInputError
from .logging_utils import configure_logging
from .models import CountingMode
from .report import render_text
from .server import run_simulation

EPILOG = """\
Log files must be Apache-style access logs, plain text or gzipped. If you
specify multiple files, go from old to new. Dates must look like
"%%d/%%b/%%Y:%%H:%%M:%%S %%z".

Default mode works like classic mod_evasive: a request less than INTERVAL
seconds after the previous one increments the counter, otherwise the counter
resets. With -w, all requests within the last INTERVAL seconds are counted.
"""


def build_parser(defaults=None) -> argparse.ArgumentParser:
    defaults = defaults or load_config()
    parser = argparse.ArgumentParser(
        prog="log-dos-finder",
        description="Find sensible mod_evasive/fail2ban parameters from existing server logs.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("logfiles", nargs="+", metavar="logfile")
    parser.add_argument("-w", dest="windowed", action="store_true",
                        default=defaults.windowed, help="true windowed mode")
    parser.add_argument("-i", dest="page_interval", type=int, default=defaults.page_interval,
                        metavar="INTERVAL_P", help="same-URL interval (default: %(default)s)")
    parser.add_argument("-n", dest="page_threshold", type=int, default=defaults.page_threshold,
                        metavar="COUNT_P", help="same-URL count (default: %(default)s)")
    parser.add_argument("-I", dest="site_interval", type=int, default=defaults.site_interval,
                        metavar="INTERVAL_S", help="any-URL interval (default: %(default)s)")
    parser.add_argument("-N", dest="site_threshold", type=int, default=defaults.site_threshold,
                        metavar="COUNT_S", help="any-URL count (default: %(default)s)")
    parser.add_argument("-q", dest="include_query", action="store_true",
                        default=defaults.include_query,
                        help="include query parameters in URLs for same-URL matches")
    parser.add_argument("-F", dest="log_format", type=int, choices=LOG_FORMATS,
                        default=defaults.log_format,
                        help="0: combined/common, 1: vhost_combined, 2: combined with 2 extra fields")
    parser.add_argument("-v", dest="verbose", action="store_true",
                        help="more progress reporting and extra statistics")
    parser.add_argument("--json", dest="as_json", action="store_true", help="print the report as JSON")
    parser.add_argument("--log-json", dest="log_json", action="store_true", default=LOG_JSON,
                        help="write log records to stderr as JSON lines")
    return parser


def main(argv=None) -> int:
    defaults = load_config()
    args = build_parser(defaults).parse_args(argv)
    configure_logging("INFO" if args.verbose else None, json_format=args.log_json)

    try:
        config = defaults.with_overrides(
            page_interval=args.page_interval,
            page_threshold=args.page_threshold,
            site_interval=args.site_interval,
            site_threshold=args.site_threshold,
            mode=CountingMode.WINDOW if args.windowed else CountingMode.DECAY,
            include_query=args.include_query,
            log_format=args.log_format,
        ).validate()
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    try:
        report = run_simulation(args.logfiles, config)
    except FatalInputError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if args.as_json:
        print(json.dumps(report, indent=2))
    else:
        sys.stdout.write(render_text(report, verbose=args.verbose))
    return 0


if __name__ == "__main__":
    sys.exit(main())
