import argparse
import datetime
import json
import logging
import shutil

from db import Database, SettingsRepository
from rest_api import WorkoutAPI

logger = logging.getLogger("workouts.cli")


def configure_logging(db_path: str, yaml_path: str) -> None:
    level = SettingsRepository(db_path, yaml_path).get_text("log_level", "INFO")
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


def export_sessions(
    db_path: str, yaml_path: str, user_id: str, start: str, end: str, out: str
) -> int:
    """Write the user's sessions started in ``[start, end)`` as JSON."""
    api = WorkoutAPI(db_path=db_path, yaml_path=yaml_path)
    sessions = api.session_service.by_range(
        user_id,
        datetime.datetime.fromisoformat(start),
        datetime.datetime.fromisoformat(end),
    )
    with open(out, "w", encoding="utf-8") as f:
        json.dump(sessions, f, indent=2)
    logger.info("exported %d sessions to %s", len(sessions), out)
    return len(sessions)


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def demo_data(db_path: str, yaml_path: str, user_id: str) -> dict:
    """Create a demo plan scheduled for today if the user has none."""
    api = WorkoutAPI(db_path=db_path, yaml_path=yaml_path)
    if api.plan_service.list(user_id):
        print("User already has plans")
        return {}
    plan = api.plan_service.create(
        user_id,
        "Demo Strength",
        [
            {
                "name": "Bench Press",
                "rest_seconds": 120,
                "sets": [{"reps": 5, "weight": 100.0}, {"reps": 5, "weight": 105.0}],
            },
            {
                "name": "Squat",
                "rest_seconds": 180,
                "sets": [{"reps": 5, "weight": 140.0}],
            },
        ],
        plan_type="strength",
    )
    scheduled = api.scheduler.create(
        user_id, datetime.date.today().isoformat(), plan["id"]
    )
    print("Demo data inserted")
    return {"plan": plan, "scheduled": scheduled}


def main() -> None:
    parser = argparse.ArgumentParser(description="Utility commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    srv = sub.add_parser("serve")
    srv.add_argument("--db", default="workout.db")
    srv.add_argument("--yaml", default="settings.yaml")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)
    srv.add_argument("--rate-limit", type=int, default=None)

    exp = sub.add_parser("export")
    exp.add_argument("--db", default="workout.db")
    exp.add_argument("--yaml", default="settings.yaml")
    exp.add_argument("--user", required=True)
    exp.add_argument("--from", dest="start", required=True)
    exp.add_argument("--to", dest="end", required=True)
    exp.add_argument("--out", default="sessions.json")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db", default="workout.db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db", default="workout.db")

    vac = sub.add_parser("vacuum")
    vac.add_argument("--db", default="workout.db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="workout.db")
    demo.add_argument("--yaml", default="settings.yaml")
    demo.add_argument("--user", default="demo")

    args = parser.parse_args()

    if args.cmd in {"serve", "export", "demo"}:
        configure_logging(args.db, args.yaml)

    if args.cmd == "serve":
        import uvicorn

        api = WorkoutAPI(args.db, args.yaml, rate_limit=args.rate_limit)
        uvicorn.run(api.app, host=args.host, port=args.port)
    elif args.cmd == "export":
        export_sessions(args.db, args.yaml, args.user, args.start, args.end, args.out)
    elif args.cmd == "backup":
        backup_db(args.db, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, args.db)
    elif args.cmd == "vacuum":
        Database(args.db).vacuum()
    elif args.cmd == "demo":
        demo_data(args.db, args.yaml, args.user)


if __name__ == "__main__":
    main()
