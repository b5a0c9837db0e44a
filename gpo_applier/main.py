# main.py
# 命令列入口：
#   gpo-applier apply bitlocker --gpo-name "CMMC-BitLocker" --target-ou "OU=Workstations,DC=corp,DC=local" --create-backup
#   gpo-applier apply vdi-agent --gpo-name "CMMC-VDI" --vdi-instant-clone
#   gpo-applier list | export <catalog> <file.json> | env-check
import os
import re
import sys
import logging
import argparse
import datetime

from .catalog import Context, load_catalog_file, save_catalog_file
from .catalogs import CATALOGS, DOMAIN_CONTROLLER, EPHEMERAL, get_catalog
from .config import get_config, setup_logging
from .errors import InvalidCatalog, PolicyError
from .gpo_store import GroupPolicyStore
from .runner import PolicyRunner
from .store import JsonFileStore
from .utils import environment_check
from . import report
from . import report_html

logger = logging.getLogger("gpo_applier")

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_ABORTED = 2

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def parse_flag(text):
    name, sep, raw = text.partition("=")
    name = name.strip()
    if not name:
        raise argparse.ArgumentTypeError(f"invalid flag {text!r}, expected name=true|false")
    if not sep:
        return name, True
    raw = raw.strip().lower()
    if raw in _TRUE:
        return name, True
    if raw in _FALSE:
        return name, False
    raise argparse.ArgumentTypeError(f"invalid flag value in {text!r}, expected true or false")


def build_parser():
    parser = argparse.ArgumentParser(prog="gpo-applier", description="以宣告式目錄套用 Group Policy 登錄設定")
    parser.add_argument("-v", "--verbose", action="store_true", help="顯示 DEBUG 訊息（含 PowerShell 指令）")
    sub = parser.add_subparsers(dest="command", required=True)

    apply_p = sub.add_parser("apply", help="套用目錄到 GPO")
    apply_p.add_argument("catalog", nargs="?", help=f"內建目錄：{', '.join(CATALOGS)}")
    apply_p.add_argument("--catalog-file", help="改用 JSON 目錄檔")
    apply_p.add_argument("--gpo-name", required=True, help="GPO（容器）名稱")
    apply_p.add_argument("--description", default="", help="新建 GPO 時的說明")
    apply_p.add_argument("--target-ou", help="要連結的 OU（distinguished name）")
    apply_p.add_argument("--create-backup", action="store_true", help="變更前先備份 GPO")
    apply_p.add_argument("--backup-path", help="備份資料夾（預設為輸出資料夾下的 backups）")
    apply_p.add_argument("--backup-fatal", action="store_true", help="備份失敗時中止，而非僅警告")
    apply_p.add_argument("--vdi-instant-clone", action="store_true", help="目標為非持續性 VDI（isEphemeralTarget）")
    apply_p.add_argument("--domain-controller", action="store_true", help="目標為網域控制站（isDomainController）")
    apply_p.add_argument("--flag", action="append", type=parse_flag, default=[], metavar="NAME=BOOL",
                         help="額外的環境旗標，可重複指定")
    apply_p.add_argument("--store", choices=["gpo", "file"], default="gpo", help="後端：Group Policy 或 JSON 設定檔")
    apply_p.add_argument("--store-file", help="--store file 時使用的 JSON 檔")
    apply_p.add_argument("--domain", help="GPO 所在網域（預設為目前網域）")
    apply_p.add_argument("--report-dir", help="報告輸出資料夾")
    apply_p.add_argument("--format", action="append", choices=["txt", "csv", "html", "pdf"], dest="formats",
                         help="報告格式，可重複指定（預設 txt + html）")

    sub.add_parser("list", help="列出內建目錄")

    export_p = sub.add_parser("export", help="將內建目錄輸出為 JSON")
    export_p.add_argument("catalog", choices=sorted(CATALOGS))
    export_p.add_argument("output")

    sub.add_parser("env-check", help="檢查系統管理員權限與 GroupPolicy cmdlet")
    return parser


def _load_catalog(args):
    if args.catalog_file:
        return load_catalog_file(args.catalog_file)
    if not args.catalog:
        raise InvalidCatalog("no catalog name or --catalog-file given")
    return get_catalog(args.catalog)


def _make_store(args):
    if args.store == "file":
        path = args.store_file or os.path.join(get_config().base_dir, "policy_store.json")
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        return JsonFileStore(path)
    return GroupPolicyStore(domain=args.domain)


def safe_filename(text):
    """目錄 id 可能含路徑字元（例如 a/b），轉成可用的檔名片段"""
    return re.sub(r"[^\w.-]+", "_", str(text)).strip("._") or "catalog"


def write_reports(result, folder, formats):
    """逐一輸出各格式報告；單一格式失敗只記錄，不影響其他格式與結束代碼"""
    try:
        os.makedirs(folder, exist_ok=True)
    except OSError as e:
        logger.error("無法建立報告資料夾 %s: %s", folder, e)
        return []
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    basepath = os.path.join(folder, f"apply_{safe_filename(result.catalog_id)}_{timestamp}")
    writers = {
        "txt": report.generate_txt,
        "csv": report.generate_csv,
        "html": report_html.generate_html,
        "pdf": report.generate_pdf,
    }
    written = []
    for fmt in formats:
        path = f"{basepath}.{fmt}"
        try:
            writers[fmt](path, result)
        except Exception as e:
            logger.error("%s 報告產生失敗: %s", fmt.upper(), e)
            continue
        logger.info("%s 報告已輸出: %s", fmt.upper(), os.path.abspath(path))
        written.append(path)
    return written


def cmd_apply(args):
    config = get_config()
    try:
        catalog = _load_catalog(args)
    except (PolicyError, KeyError) as e:
        logger.error("無法載入目錄: %s", e)
        return EXIT_ABORTED
    for key, name in catalog.duplicates():
        logger.warning("目錄 %s 重複設定 %s\\%s，以最後一筆為準", catalog.id, key, name)

    flags = {EPHEMERAL: args.vdi_instant_clone, DOMAIN_CONTROLLER: args.domain_controller}
    flags.update(dict(args.flag))
    context = Context(flags)

    runner = PolicyRunner(_make_store(args), backup_failure_fatal=args.backup_fatal)
    try:
        result = runner.run(
            catalog,
            args.gpo_name,
            context,
            description=args.description or catalog.description,
            target_scope=args.target_ou,
            backup_requested=args.create_backup,
            backup_destination=args.backup_path or str(config.backups_dir),
        )
    except PolicyError as e:
        logger.error("套用中止: %s", e)
        return EXIT_ABORTED

    logger.info("摘要: %s", result.summary())
    write_reports(result, args.report_dir or str(config.reports_dir), args.formats or ["txt", "html"])
    for setting, error in result.failed:
        logger.warning("需處理: %s -> %s", setting.label, error.reason)
    return EXIT_PARTIAL if result.failed else EXIT_OK


def cmd_list(args):
    for name in CATALOGS:
        catalog = get_catalog(name)
        print(f"{name:<10} {len(catalog):>3} 項  {catalog.description}")
    return EXIT_OK


def cmd_export(args):
    save_catalog_file(get_catalog(args.catalog), args.output)
    print(f"已輸出: {os.path.abspath(args.output)}")
    return EXIT_OK


def cmd_env_check(args):
    ok, lines = environment_check()
    for line in lines:
        print(line)
    return EXIT_OK if ok else EXIT_ABORTED


COMMANDS = {
    "apply": cmd_apply,
    "list": cmd_list,
    "export": cmd_export,
    "env-check": cmd_env_check,
}


def main(argv=None):
    args = build_parser().parse_args(argv)
    if args.command == "apply":
        transcript = setup_logging(level="DEBUG" if args.verbose else None)
        if transcript:
            logger.info("transcript: %s", transcript)
    else:
        logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
