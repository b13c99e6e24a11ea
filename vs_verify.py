# vs_verify.py
"""
VEOSigCheck - checks the signatures of VERS Encapsulated Objects (VEOs).

Every vers:SignatureBlock and vers:LockSignatureBlock of each VEO is verified
in a single pass over the file, including the signatures of every earlier
revision wrapped inside an onion VEO. Certificate chains are checked link by
link up to a self signed root.

Example usage:
# Check every layer of two VEOs
python vs_verify.py record1.veo record2.veo

# Check only the outermost layer, with signature and certificate dumps
python vs_verify.py record1.veo --one-layer --verbose

# Keep the diagnostics as JSON
python vs_verify.py record1.veo -o output/signature_results.json
"""

import argparse
import json
import logging
import os
import sys
from typing import Dict, List, Optional

import portalocker
from portalocker import LOCK_EX

from veosig.config import Config
from veosig import scanner
from veosig.report import ResultSummary

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False):
    """Log to the console and to Config.LOG_FILE."""
    os.makedirs(os.path.dirname(Config.LOG_FILE), exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(Config.LOG_FILE, mode='a', encoding='utf-8'),
            logging.StreamHandler()
        ]
    )


def save_signature_results(output_file_path: str, data: List[Dict]) -> bool:
    """
    Securely saves the signature results using an exclusive lock.
    """
    logger.info(f"Saving signature results to: {output_file_path}")
    try:
        with portalocker.Lock(output_file_path, "w", flags=LOCK_EX, timeout=Config.LOCK_TIMEOUT) as f:
            json.dump(data, f, indent=4)
        logger.info(f"Successfully saved {len(data)} results to {output_file_path}.")
        return True
    except (portalocker.exceptions.LockException, OSError) as e:
        logger.error(f"Error saving or locking results file '{output_file_path}': {e}")
        return False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=f"{Config.VEOSIG_ID}: verifies the signatures of VERS Encapsulated Objects.",
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument(
        'veo_files',
        nargs='+',
        help="One or more VEO files to check."
    )
    parser.add_argument(
        '--one-layer',
        action='store_true',
        default=None,
        help=f"Only verify the first signature block of the outer layer. (Default: {Config.ONE_LAYER})"
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        default=None,
        help="Report each verified signature and dump signatures and certificates."
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help="Log every recognised tag and level change."
    )
    parser.add_argument(
        '-o', '--output-file',
        default=Config.RESULTS_FILE,
        help=f"Path to write the results as JSON. (Default: {Config.RESULTS_FILE})"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)

    sig_scanner = scanner.SignatureScanner(one_layer=args.one_layer, verbose=args.verbose)
    summary = ResultSummary()
    results = []

    for veo_file in args.veo_files:
        print(f"--- {veo_file} ---")
        passed, diagnostics = sig_scanner.verify_file(veo_file)
        for diagnostic in diagnostics:
            print(f"  {diagnostic}")
        print(f"  Result: {'PASS' if passed else 'FAIL'}")
        summary.record(veo_file, passed, diagnostics)
        results.append({
            "veo": veo_file,
            "passed": passed,
            "one_layer": sig_scanner.one_layer,
            "diagnostics": [d.to_dict() for d in diagnostics],
        })

    print()
    for line in summary.report_lines():
        print(line)

    exit_code = 0 if not summary.failed_files else 1
    if not save_signature_results(args.output_file, results):
        exit_code = 2
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
