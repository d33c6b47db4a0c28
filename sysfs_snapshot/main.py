import argparse
import hashlib
import os
import platform
import shutil
import socket
import sys
import tempfile
from pathlib import Path

from sysfs_snapshot.config import settings
from sysfs_snapshot.logging import (
    LoggerFactory,
    operation_context,
    setup_logging,
    trace_callback,
)
from sysfs_snapshot.snapshot import (
    SnapshotError,
    SnapshotIOError,
    clone_tree_into,
    pack_from,
    unpack,
    unpack_into,
)


def system_fingerprint():
    try:
        hostname = socket.gethostname()
    except OSError:
        return "unknown"
    return hashlib.md5(hostname.encode("utf-8")).hexdigest()


def default_out_path(compress=True):
    system = platform.system().lower() or "unknown"
    machine = platform.machine().lower() or "unknown"
    suffix = "tar.gz" if compress else "tar"
    return f"{system}-{machine}-{system_fingerprint()}.{suffix}"


def run_snapshot(out_path, source_root="/", compress=True, scratch_dir=None, keep_scratch=False):
    """Clone source_root into a scratch directory and pack it into out_path."""
    log = LoggerFactory.for_system()
    scratch_parent = str(scratch_dir) if scratch_dir else tempfile.gettempdir()
    try:
        scratch_root = tempfile.mkdtemp(prefix=settings.DEFAULT_SCRATCH_PREFIX, dir=scratch_parent)
    except OSError as error:
        reason = error.strerror or str(error)
        raise SnapshotIOError(
            f"creating scratch directory failed ({reason})", path=scratch_parent
        ) from error
    try:
        with operation_context("clone", scratch=scratch_root) as clone_log:
            clone_tree_into(scratch_root, source_root, log_debug=trace_callback(clone_log))
        with operation_context("pack", archive=out_path) as pack_log:
            pack_from(out_path, scratch_root, compress=compress, log_debug=trace_callback(pack_log))
    finally:
        if keep_scratch:
            log.info(f"Scratch tree kept at {scratch_root}")
        else:
            shutil.rmtree(scratch_root, ignore_errors=True)
    return out_path


def run_unpack(archive, directory=None):
    """Restore archive into directory (or a fresh temporary one)."""
    with operation_context("unpack", archive=archive) as unpack_log:
        log_debug = trace_callback(unpack_log)
        if directory:
            unpack_into(archive, str(directory), log_debug=log_debug)
            return str(directory)
        return unpack(archive, log_debug=log_debug)


def save_defaults(args):
    settings.set_setting("compress", args.compress)
    settings.set_setting("keep_scratch", args.keep_scratch)
    if args.log_dir:
        settings.set_setting("log_dir", str(Path(args.log_dir).expanduser().resolve()))


def build_parser():
    parser = argparse.ArgumentParser(
        prog="sysfs-snapshot",
        description="Snapshot the /proc and /sys files describing this machine's hardware.",
    )
    parser.add_argument(
        "-o",
        "--out",
        default=None,
        help=(
            "Path to place snapshot. Defaults to a file in the current directory "
            "named $OS-$ARCH-$HASHSYSTEMNAME.tar.gz"
        ),
    )
    parser.add_argument(
        "--no-compress",
        dest="compress",
        action="store_false",
        default=settings.get_bool("compress", True),
        help="Write a plain tar archive instead of tar.gz",
    )
    parser.add_argument("--root", default="/", help="Filesystem root to capture (default: /)")
    parser.add_argument(
        "--keep-scratch",
        action="store_true",
        default=settings.get_bool("keep_scratch"),
        help="Keep the scratch mirror directory after packing",
    )
    parser.add_argument(
        "--unpack",
        metavar="ARCHIVE",
        default=None,
        help="Restore ARCHIVE instead of taking a snapshot",
    )
    parser.add_argument(
        "-C",
        "--directory",
        default=None,
        help="Directory to restore into with --unpack (default: new temp dir)",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Log every copied file")
    parser.add_argument("--log-dir", default=None, help="Directory for log files")
    parser.add_argument(
        "--save-defaults",
        action="store_true",
        help="Store --no-compress, --keep-scratch and --log-dir as defaults and exit",
    )
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    log_dir = Path(args.log_dir) if args.log_dir else settings.get_path("log_dir")
    setup_logging(debug=args.debug, trace=args.trace, log_dir=log_dir)
    log = LoggerFactory.for_system()

    if args.save_defaults:
        try:
            save_defaults(args)
        except OSError as error:
            log.error(f"Saving defaults to {settings.SETTINGS_PATH} failed: {error}")
            return 1
        log.info(f"Defaults saved to {settings.SETTINGS_PATH}")
        return 0

    try:
        if args.unpack:
            print(run_unpack(args.unpack, args.directory))
            return 0
        out_path = args.out or default_out_path(args.compress)
        if not args.out:
            log.debug(f"using default output filepath {out_path}")
        run_snapshot(
            out_path,
            source_root=args.root,
            compress=args.compress,
            scratch_dir=settings.get_path("scratch_dir"),
            keep_scratch=args.keep_scratch,
        )
        print(os.path.abspath(out_path))
    except SnapshotError as error:
        log.error(f"Snapshot failed: {error}")
        return 1
    except KeyboardInterrupt:
        log.warning("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
