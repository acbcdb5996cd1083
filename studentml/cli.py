"""studentml command-line interface."""

import argparse
import csv
import json
import sys
from pathlib import Path


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="studentml - storage for students' ML projects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to configuration file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Init database command
    db_parser = subparsers.add_parser("init-db", help="Initialize database")
    db_parser.add_argument(
        "--path",
        type=str,
        default=None,
        help="Database path (default: from configuration)",
    )

    # Stats command
    stats_parser = subparsers.add_parser("stats", help="Show training data counts for a project")
    stats_parser.add_argument("projectid", type=str, help="Project id")
    stats_parser.add_argument("--path", type=str, default=None, help="Database path")

    # Export command
    export_parser = subparsers.add_parser("export", help="Export a project's training data")
    export_parser.add_argument("projectid", type=str, help="Project id")
    export_parser.add_argument("output", type=str, help="Output file")
    export_parser.add_argument(
        "--format", "-f",
        choices=["json", "csv"],
        default="json",
        help="Output format (default: json)",
    )
    export_parser.add_argument("--path", type=str, default=None, help="Database path")

    # Version command
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    if args.command == "init-db":
        return cmd_init_db(args)
    elif args.command == "stats":
        return cmd_stats(args)
    elif args.command == "export":
        return cmd_export(args)
    elif args.command == "version":
        return cmd_version(args)
    else:
        parser.print_help()
        return 0


def _load_config(args):
    from studentml.core.config import StudentMLConfig, configure_logging, get_default_config

    if args.config:
        config = StudentMLConfig.load(args.config)
    else:
        try:
            config = StudentMLConfig.load()
        except FileNotFoundError:
            config = get_default_config()

    configure_logging(config.logging)
    return config


def _open_database(args, config):
    from studentml.persistence.database import StudentMLDatabase

    if getattr(args, "path", None):
        db = StudentMLDatabase(args.path, busy_timeout_ms=config.database.busy_timeout_ms)
    else:
        db = StudentMLDatabase.from_config(config.database)
    db.initialize()
    return db


def cmd_init_db(args):
    """Initialize the database."""
    config = _load_config(args)

    with _open_database(args, config) as db:
        print(f"Initializing database at: {db.db_path}")
        tables = db.list_tables()

    print(f"Created tables: {', '.join(tables)}")
    print("Database initialized successfully!")
    return 0


def cmd_stats(args):
    """Show training data counts for a project."""
    from studentml.core.objects import ObjectFactory
    from studentml.persistence import ProjectStore, TrainingStore

    config = _load_config(args)
    factory = ObjectFactory.from_config(config)

    with _open_database(args, config) as db:
        project = ProjectStore(db, factory).get_project(args.projectid)
        if project is None:
            print(f"Error: project {args.projectid} not found")
            return 1

        training = TrainingStore(db, factory)
        total = training.count_training(project.type, project.id)
        by_label = training.count_training_by_label(project.type, project.id)

    print(f"Project: {project.name} ({project.type.value})")
    print(f"Labels: {', '.join(project.labels) or '-'}")
    print(f"Training examples: {total}")
    for label, count in sorted(by_label.items()):
        print(f"  {label}: {count}")
    return 0


def cmd_export(args):
    """Export a project's training data for an external training service."""
    from studentml.core.objects import ObjectFactory, get_db_row_from_training
    from studentml.core.schema import ProjectType
    from studentml.persistence import ProjectStore, TrainingStore

    config = _load_config(args)
    factory = ObjectFactory.from_config(config)

    with _open_database(args, config) as db:
        project = ProjectStore(db, factory).get_project(args.projectid)
        if project is None:
            print(f"Error: project {args.projectid} not found")
            return 1

        training = TrainingStore(db, factory)
        examples = training.get_training(project.type, project.id)

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if args.format == "json":
        data = []
        for example in examples:
            item = get_db_row_from_training(example)
            if project.type is ProjectType.NUMBERS:
                item["numberdata"] = list(example.numberdata)
            data.append(item)
        with open(output_path, "w") as f:
            json.dump({"project": project.id, "type": project.type.value, "training": data}, f, indent=2)
    else:
        with open(output_path, "w", newline="") as f:
            writer = csv.writer(f)
            if project.type is ProjectType.NUMBERS:
                writer.writerow([field.name for field in project.fields] + ["label"])
                for example in examples:
                    writer.writerow(list(example.numberdata) + [example.label or ""])
            else:
                writer.writerow(["data", "label"])
                for example in examples:
                    row = get_db_row_from_training(example)
                    data = row.get("textdata", row.get("imageurl"))
                    writer.writerow([data, example.label or ""])

    print(f"Exported {len(examples)} examples to {output_path}")
    return 0


def cmd_version(args):
    """Show version."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        v = version("studentml")
    except PackageNotFoundError:
        v = "0.1.0"

    print(f"studentml v{v}")
    print("Storage and validation for students' ML projects")
    return 0


if __name__ == "__main__":
    sys.exit(main())
