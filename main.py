import os
import sys
import argparse

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from storagekit.config import load_config, get_config
from storagekit.exceptions import FilesystemError
from storagekit.logger import fs_log
from storagekit.storage.registry import create_adapter


def test_disks(cfg) -> bool:
    ok = True
    for name in cfg.disks:
        disk = cfg.disk(name)
        adapter = create_adapter(disk)
        try:
            exists = adapter.directory_exists('')
            print(f"[{name}] {disk['driver']} root={disk.get('root') or '/'}: {'OK' if exists else 'MISSING ROOT'}")
            ok = ok and exists
        except FilesystemError as e:
            print(f"[{name}] {disk['driver']}: FAILED - {e}", file=sys.stderr)
            fs_log("TEST", f"disk={name} reason={e}", "ERROR")
            ok = False
        finally:
            adapter.disconnect()
    return ok


def list_path(adapter, path: str, recursive: bool):
    for item in sorted(adapter.finder(path, recursive), key=lambda attributes: attributes.path):
        if item.is_dir():
            print(f"d {item.visibility or '-':<8} {'':>10} {item.path}/")
        else:
            print(f"f {item.visibility or '-':<8} {item.size:>10} {item.path}")


def cat_path(adapter, path: str):
    with adapter.read_stream(path) as stream:
        for chunk in iter(lambda: stream.read(65536), b''):
            sys.stdout.buffer.write(chunk)
    sys.stdout.buffer.flush()


def main():
    parser = argparse.ArgumentParser(description="storagekit filesystem tool")
    parser.add_argument("-c", "--config", default="./config.yaml", help="Configuration file path")
    parser.add_argument("-d", "--disk", default=None, help="Disk name (defaults to the configured default disk)")
    parser.add_argument("-t", "--test", action="store_true", help="Connect to every configured disk and exit")
    parser.add_argument("-l", "--list", metavar="PATH", help="List a directory")
    parser.add_argument("-R", "--recursive", action="store_true", help="List recursively")
    parser.add_argument("--cat", metavar="PATH", help="Write a file to stdout")

    args = parser.parse_args()

    load_config(args.config)
    cfg = get_config()

    validation_errors = cfg.validate()
    if validation_errors:
        print("Configuration validation failed:", file=sys.stderr)
        for error in validation_errors:
            print(f"  - {error}", file=sys.stderr)
        sys.exit(1)

    if args.test:
        print(f"Configuration loaded successfully from {args.config}")
        print(f"Default disk: {cfg.default}")
        if not test_disks(cfg):
            sys.exit(1)
        return

    if args.list is None and args.cat is None:
        parser.print_help()
        return

    try:
        adapter = create_adapter(cfg.disk(args.disk))
    except ValueError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)

    try:
        if args.list is not None:
            list_path(adapter, args.list, args.recursive)
        if args.cat is not None:
            cat_path(adapter, args.cat)
    except FilesystemError as e:
        fs_log(e.operation, f"path={e.path} reason={e.reason or e}", "ERROR")
        print(str(e), file=sys.stderr)
        sys.exit(1)
    finally:
        adapter.disconnect()


if __name__ == "__main__":
    main()
