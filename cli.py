import argparse
import asyncio
import datetime
import json
import logging
import shutil

from algorithms import EnergyTools
from migrate import migrate
from rest_api import TrackerAPI
from seed_data import seed_demo


def export_records(db_path: str, yaml_path: str, out_path: str) -> int:
    """Write every stored record as one JSON document."""
    api = TrackerAPI(db_path=db_path, yaml_path=yaml_path)
    data = asyncio.run(api.repos.store.dump())
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    return len(data)


def import_records(in_path: str, db_path: str, yaml_path: str) -> int:
    api = TrackerAPI(db_path=db_path, yaml_path=yaml_path)
    with open(in_path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("export file must contain a JSON object")
    asyncio.run(api.repos.store.load(data))
    asyncio.run(api.scheduler.rearm())
    return len(data)


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def dispatch(db_path: str, yaml_path: str) -> int:
    """Deliver due reminders once and re-arm if the day rolled over."""
    api = TrackerAPI(db_path=db_path, yaml_path=yaml_path)
    return len(asyncio.run(api.reminder_tick()))


def demo_data(db_path: str, yaml_path: str) -> int:
    """Populate the ledger with two weeks of demo history if empty."""
    api = TrackerAPI(db_path=db_path, yaml_path=yaml_path)
    today = api._today()
    return asyncio.run(seed_demo(api.ledger, api.supplements, today))


def energy(
    weight: float,
    height: float,
    age: int,
    sex: str,
    activity: str,
    formula: str,
) -> dict[str, int]:
    bmr = EnergyTools.bmr(weight, height, age, sex, formula)
    return {"bmr": round(bmr), "tdee": round(EnergyTools.tdee(bmr, activity))}


def serve(db_path: str, yaml_path: str, host: str, port: int, reminders: bool) -> None:
    import uvicorn

    api = TrackerAPI(db_path=db_path, yaml_path=yaml_path, start_reminder=reminders)
    uvicorn.run(api.app, host=host, port=port)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Activity ledger utilities")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    srv = sub.add_parser("serve")
    srv.add_argument("--db", default="fitledger.db")
    srv.add_argument("--yaml", default="settings.yaml")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)
    srv.add_argument("--no-reminders", dest="reminders", action="store_false")

    dsp = sub.add_parser("dispatch")
    dsp.add_argument("--db", default="fitledger.db")
    dsp.add_argument("--yaml", default="settings.yaml")

    exp = sub.add_parser("export")
    exp.add_argument("--db", default="fitledger.db")
    exp.add_argument("--yaml", default="settings.yaml")
    exp.add_argument("--out", default="export.json")

    imp = sub.add_parser("import")
    imp.add_argument("--in", dest="src", default="export.json")
    imp.add_argument("--db", default="fitledger.db")
    imp.add_argument("--yaml", default="settings.yaml")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="fitledger.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="fitledger.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="fitledger.db")
    demo.add_argument("--yaml", default="settings.yaml")

    mig = sub.add_parser("migrate")
    mig.add_argument("--db", default="fitledger.db")

    en = sub.add_parser("energy")
    en.add_argument("--weight", type=float, required=True)
    en.add_argument("--height", type=float, required=True)
    en.add_argument("--age", type=int, required=True)
    en.add_argument("--sex", choices=["male", "female"], required=True)
    en.add_argument(
        "--activity",
        choices=list(EnergyTools.ACTIVITY_MULTIPLIERS),
        default="moderate",
    )
    en.add_argument(
        "--formula",
        choices=list(EnergyTools.BMR_FORMULAS),
        default="mifflin_st_jeor",
    )

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "serve":
        serve(args.db, args.yaml, args.host, args.port, args.reminders)
    elif args.cmd == "dispatch":
        print(f"Dispatched {dispatch(args.db, args.yaml)} reminder(s)")
    elif args.cmd == "export":
        count = export_records(args.db, args.yaml, args.out)
        print(f"Exported {count} record(s) to {args.out}")
    elif args.cmd == "import":
        count = import_records(args.src, args.db, args.yaml)
        print(f"Imported {count} record(s)")
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "demo":
        demo_data(args.db, args.yaml)
    elif args.cmd == "migrate":
        changed = asyncio.run(migrate(args.db))
        print(f"Migrated {changed} record(s)")
    elif args.cmd == "energy":
        result = energy(
            args.weight, args.height, args.age, args.sex, args.activity, args.formula
        )
        print(f"BMR {result['bmr']} kcal/day, TDEE {result['tdee']} kcal/day")


if __name__ == "__main__":
    main()
