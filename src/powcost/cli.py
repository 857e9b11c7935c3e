import argparse
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from dotenv import load_dotenv

from .app import AppContext
from .config import Config
from .config import load_config as load_runtime_config
from .models import Item, Project
from .reporting import make_summary_text

logger = logging.getLogger(__name__)

PROJECT_FIELDS = ("title", "location", "category", "identification_no", "duration", "source_of_fund")
ITEM_FIELDS = ("item_no", "description", "category", "subcategory", "unit", "unit_cost", "cost_type")


def _collect(args: argparse.Namespace, names: Sequence[str]) -> Dict[str, Any]:
    return {name: getattr(args, name) for name in names if getattr(args, name, None) is not None}


def _format_item(item: Item, currency: str) -> str:
    return (
        f"{item.id:>4}  {item.item_no:<10} {item.description:<40.40} "
        f"{item.category:<22.22} {item.unit:<6} {currency}{item.unit_cost:>12,.2f}  {item.cost_type.value}"
    )


def _format_project(project: Project) -> str:
    ident = project.identification_no or "-"
    return f"{project.id}  {ident:<16} {project.title}  (updated {project.updated_at})"


def _require_project(ctx: AppContext, project_id: str) -> Optional[Project]:
    project = ctx.get_project(project_id)
    if project is None:
        logger.error("Project %s not found", project_id)
    return project


def _run_catalog(ctx: AppContext, args: argparse.Namespace) -> int:
    currency = ctx.store.settings.get().currency_symbol
    action = args.catalog_command
    if action == "list":
        items = ctx.catalog()
        if args.category:
            items = [item for item in items if item.category == args.category]
        for item in items:
            print(_format_item(item, currency))
        logger.info("%d item(s)", len(items))
        return 0
    if action == "add":
        item = ctx.add_catalog_item(_collect(args, ITEM_FIELDS))
        print(_format_item(item, currency))
        return 0
    if action == "update":
        item = ctx.update_catalog_item(args.item_id, _collect(args, ITEM_FIELDS))
        if item is None:
            logger.error("Catalog item %s not found", args.item_id)
            return 1
        print(_format_item(item, currency))
        return 0
    if action == "delete":
        if not ctx.delete_catalog_item(args.item_id):
            logger.error("Catalog item %s not found", args.item_id)
            return 1
        return 0
    if action == "import":
        result = ctx.import_catalog_csv(Path(args.path), replace=args.replace, naive=args.naive)
        print(f"Imported {len(result.added)} item(s)")
        return 0
    if action == "export":
        print(ctx.export_catalog_csv(args.out))
        return 0
    raise ValueError(f"Unknown catalog command: {action}")


def _run_project(ctx: AppContext, args: argparse.Namespace) -> int:
    action = args.project_command
    if action == "list":
        for project in ctx.list_projects():
            print(_format_project(project))
        return 0
    if action == "create":
        print(_format_project(ctx.create_project(_collect(args, PROJECT_FIELDS))))
        return 0
    if action == "update":
        project = ctx.update_project(args.project_id, _collect(args, PROJECT_FIELDS))
        if project is None:
            logger.error("Project %s not found", args.project_id)
            return 1
        print(_format_project(project))
        return 0
    if action == "delete":
        if not ctx.delete_project(args.project_id):
            logger.error("Project %s not found", args.project_id)
            return 1
        return 0
    if action == "duplicate":
        copy = ctx.duplicate_project(args.project_id)
        if copy is None:
            logger.error("Project %s not found", args.project_id)
            return 1
        print(_format_project(copy))
        return 0
    if action == "add-item":
        project_item = ctx.add_item_to_project(args.project_id, args.item_id, args.quantity)
        if project_item is None:
            return 1
        print(f"{project_item.id}  {project_item.item_no}  {project_item.quantity:g} x {project_item.unit_cost:,.2f}")
        return 0
    if action == "update-item":
        updates = {k: v for k, v in (("quantity", args.quantity), ("unit_cost", args.unit_cost)) if v is not None}
        if "quantity" in updates and updates["quantity"] <= 0:
            logger.error("Quantity must be greater than zero")
            return 1
        if ctx.update_project_item(args.project_item_id, updates) is None:
            logger.error("Project item %s not found", args.project_item_id)
            return 1
        return 0
    if action == "remove-item":
        if not ctx.remove_project_item(args.project_item_id):
            logger.error("Project item %s not found", args.project_item_id)
            return 1
        return 0
    if action == "rates":
        if _require_project(ctx, args.project_id) is None:
            return 1
        updates = {"ocm_percent": args.ocm, "profit_percent": args.profit, "tax_percent": args.tax}
        if any(value is not None for value in updates.values()):
            rates = ctx.set_rates(args.project_id, updates).rates
        else:
            rates = ctx.get_rates(args.project_id)
        print(f"OCM {rates.ocm_percent:g}%  Profit {rates.profit_percent:g}%  VAT {rates.tax_percent:g}%")
        return 0
    if action == "summary":
        project = _require_project(ctx, args.project_id)
        if project is None:
            return 1
        print(project.title)
        print(
            make_summary_text(
                ctx.project_items(args.project_id),
                ctx.cost_breakdown(args.project_id),
                ctx.category_subtotals(args.project_id),
                currency=ctx.store.settings.get().currency_symbol,
            ),
            end="",
        )
        return 0
    if action == "export-json":
        if _require_project(ctx, args.project_id) is None:
            return 1
        print(ctx.export_project_json(args.project_id, args.out))
        return 0
    if action == "import-json":
        project = ctx.import_project_json(Path(args.path))
        if project is None:
            return 1
        print(_format_project(project))
        return 0
    if action == "export-xlsx":
        if _require_project(ctx, args.project_id) is None:
            return 1
        print(ctx.export_workbook(args.project_id, args.out))
        return 0
    if action == "export-bundle":
        print(ctx.export_projects_bundle(args.out))
        return 0
    if action == "import-bundle":
        return 0 if ctx.import_projects_bundle(Path(args.path)) else 1
    raise ValueError(f"Unknown project command: {action}")


def _run_data(ctx: AppContext, args: argparse.Namespace) -> int:
    if args.data_command == "export":
        print(ctx.export_all_data(args.out))
        return 0
    if args.data_command == "reset":
        if not args.yes:
            logger.error("Refusing to delete all data without --yes")
            return 1
        ctx.reset_data()
        return 0
    raise ValueError(f"Unknown data command: {args.data_command}")


def _run_backup(ctx: AppContext, args: argparse.Namespace) -> int:
    if args.backup_command == "create":
        print(ctx.create_backup())
        return 0
    if args.backup_command == "list":
        for label in ctx.list_backups():
            print(label)
        return 0
    if args.backup_command == "restore":
        if not ctx.restore_backup(args.label):
            logger.error("Unable to restore backup %s", args.label)
            return 1
        return 0
    raise ValueError(f"Unknown backup command: {args.backup_command}")


def _run_remote(ctx: AppContext, args: argparse.Namespace) -> int:
    if args.remote_command == "pull-catalog":
        items = ctx.pull_catalog_from_remote()
        print(f"Pulled {len(items)} item(s)")
        return 0
    raise ValueError(f"Unknown remote command: {args.remote_command}")


def run(args: argparse.Namespace, runtime_config: Config) -> int:
    ctx = AppContext.create(runtime_config)
    logger.debug(ctx.storage_status())
    if args.command == "seed":
        count = ctx.seed_sample_data()
        print(f"Seeded {count} catalog item(s)" if count else "Catalog already populated; nothing to seed")
        return 0
    handlers = {
        "catalog": _run_catalog,
        "project": _run_project,
        "data": _run_data,
        "backup": _run_backup,
        "remote": _run_remote,
    }
    return handlers[args.command](ctx, args)


def _add_project_fields(parser: argparse.ArgumentParser, require_title: bool) -> None:
    parser.add_argument("--title", required=require_title, help="Project title")
    parser.add_argument("--location")
    parser.add_argument("--category")
    parser.add_argument("--identification-no", dest="identification_no")
    parser.add_argument("--duration")
    parser.add_argument("--source-of-fund", dest="source_of_fund")


def _add_item_fields(parser: argparse.ArgumentParser, required: bool) -> None:
    parser.add_argument("--item-no", dest="item_no", required=required)
    parser.add_argument("--description", required=required)
    parser.add_argument("--category", required=required)
    parser.add_argument("--subcategory")
    parser.add_argument("--unit", required=required)
    parser.add_argument("--unit-cost", dest="unit_cost", type=float, required=required)
    parser.add_argument("--cost-type", dest="cost_type", choices=["Material", "Labor", "Equipment"])


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="powcost", description="Program of Works cost estimate builder")
    parser.add_argument("--data-dir", help="Directory holding the key-value storage file")
    parser.add_argument("--fs-root", help="Folder for the Projects/Database/Backups tree")
    parser.add_argument("--export-dir", help="Directory for exported files")
    parser.add_argument("--strict-writes", action="store_true", help="Fail instead of logging storage write errors")
    parser.add_argument("-v", "--verbose", action="store_true", help="Increase logging verbosity")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("seed", help="Populate an empty catalog with sample items and a project")

    catalog = commands.add_parser("catalog", help="Manage the cost item catalog").add_subparsers(
        dest="catalog_command", required=True
    )
    catalog_list = catalog.add_parser("list")
    catalog_list.add_argument("--category")
    _add_item_fields(catalog.add_parser("add"), required=True)
    catalog_update = catalog.add_parser("update")
    catalog_update.add_argument("item_id", type=int)
    _add_item_fields(catalog_update, required=False)
    catalog.add_parser("delete").add_argument("item_id", type=int)
    catalog_import = catalog.add_parser("import")
    catalog_import.add_argument("path")
    catalog_import.add_argument("--replace", action="store_true", help="Clear the catalog before importing")
    catalog_import.add_argument("--naive", action="store_true", help="Split on commas without honouring quotes")
    catalog.add_parser("export").add_argument("--out", help="Target directory")

    project = commands.add_parser("project", help="Manage projects").add_subparsers(
        dest="project_command", required=True
    )
    project.add_parser("list")
    _add_project_fields(project.add_parser("create"), require_title=True)
    project_update = project.add_parser("update")
    project_update.add_argument("project_id")
    _add_project_fields(project_update, require_title=False)
    project.add_parser("delete").add_argument("project_id")
    project.add_parser("duplicate").add_argument("project_id")
    add_item = project.add_parser("add-item")
    add_item.add_argument("project_id")
    add_item.add_argument("item_id", type=int)
    add_item.add_argument("quantity")
    update_item = project.add_parser("update-item")
    update_item.add_argument("project_item_id", type=int)
    update_item.add_argument("--quantity", type=float)
    update_item.add_argument("--unit-cost", dest="unit_cost", type=float)
    project.add_parser("remove-item").add_argument("project_item_id", type=int)
    rates = project.add_parser("rates", help="Show or set OCM/profit/VAT percentages")
    rates.add_argument("project_id")
    rates.add_argument("--ocm", type=float)
    rates.add_argument("--profit", type=float)
    rates.add_argument("--tax", type=float)
    project.add_parser("summary").add_argument("project_id")
    for name in ("export-json", "export-xlsx"):
        export = project.add_parser(name)
        export.add_argument("project_id")
        export.add_argument("--out", help="Target directory")
    project.add_parser("import-json").add_argument("path")
    project.add_parser("export-bundle").add_argument("--out", help="Target directory")
    project.add_parser("import-bundle").add_argument("path")

    data = commands.add_parser("data", help="Whole-data export and reset").add_subparsers(
        dest="data_command", required=True
    )
    data.add_parser("export").add_argument("--out", help="Target directory")
    data.add_parser("reset").add_argument("--yes", action="store_true", help="Confirm deleting all data")

    backup = commands.add_parser("backup", help="Create, list and restore backups").add_subparsers(
        dest="backup_command", required=True
    )
    backup.add_parser("create")
    backup.add_parser("list")
    backup.add_parser("restore").add_argument("label", help="Backup date (YYYY-MM-DD) or backup file")

    remote = commands.add_parser("remote", help="Remote store operations").add_subparsers(
        dest="remote_command", required=True
    )
    remote.add_parser("pull-catalog")

    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    runtime_cfg = load_runtime_config(os.environ, args)
    log_level = logging.DEBUG if runtime_cfg.verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(message)s")
    try:
        return run(args, runtime_cfg)
    except Exception:
        logger.exception("Fatal error")
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
