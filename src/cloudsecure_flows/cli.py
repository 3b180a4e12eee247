"""
Command-line interface for CloudSecure Flows.
"""

import argparse
import sys
from typing import Any, Optional

from .aws_utils import load_upload_targets, select_target, upload_file
from .codec import FlowStatus
from .config import DEFAULT_CONFIG, RetrievalConfig, resolve_credentials
from .errors import CloudSecureFlowsError, ConfigError
from .filter_engine import Preset, apply_preset, output_file_name, parse_condition
from .logging_utils import generate_run_id, log_run_end, log_run_start, setup_logger
from .presets import PresetStore
from .retriever import retrieve_day
from .time_utils import format_target_date, parse_target_date


class ArgumentParser:
    """Handles command-line argument parsing."""

    @classmethod
    def build_parser(cls) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="cloudsecure-flows",
            description="Retrieve CloudSecure flow logs and filter them with IP list presets",
        )
        subparsers = parser.add_subparsers(dest="command", required=True)

        cls._add_retrieve_command(subparsers)
        cls._add_filter_command(subparsers)
        cls._add_presets_command(subparsers)
        cls._add_web_command(subparsers)

        return parser

    @classmethod
    def parse_args(cls, argv: Optional[list[str]] = None) -> argparse.Namespace:
        """Parse and return command-line arguments."""
        return cls.build_parser().parse_args(argv)

    @staticmethod
    def _add_upload_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--s3-config",
            default=DEFAULT_CONFIG["s3_config_file"],
            help="S3 upload configuration file",
        )
        parser.add_argument(
            "--nos3", action="store_true", help="Skip uploading to S3 bucket"
        )

    @classmethod
    def _add_retrieve_command(cls, subparsers: Any) -> None:
        parser = subparsers.add_parser(
            "retrieve", help="Export one day of flows to a CSV file"
        )
        parser.add_argument(
            "--date", help="Date to retrieve as YYYYMMDD (default: yesterday)"
        )
        parser.add_argument(
            "--out", help="Output CSV file name (default: <YYYYMMDD>.csv)"
        )
        parser.add_argument("--tenant", help="CloudSecure name from the config file")
        parser.add_argument(
            "--config",
            default=DEFAULT_CONFIG["config_file"],
            help="CloudSecure credentials configuration file",
        )
        parser.add_argument("--base-url", help="Override the flow API base URL")
        parser.add_argument(
            "--segment-hours",
            type=int,
            default=DEFAULT_CONFIG["segment_hours"],
            help="Width of each time segment in hours (must divide 24)",
        )
        parser.add_argument(
            "--workers",
            type=int,
            default=DEFAULT_CONFIG["max_workers"],
            help="Concurrent segment requests (1 = sequential)",
        )
        parser.add_argument(
            "--max-attempts",
            type=int,
            default=DEFAULT_CONFIG["max_attempts"],
            help="Attempts per segment before the run fails",
        )
        cls._add_upload_args(parser)

    @classmethod
    def _add_filter_command(cls, subparsers: Any) -> None:
        parser = subparsers.add_parser(
            "filter", help="Filter a flow CSV file with a saved preset"
        )
        parser.add_argument("--input", required=True, help="Input CSV file")
        parser.add_argument("--preset", required=True, help="Name of the preset to use")
        parser.add_argument("--output", help="Output CSV file (default: <input>_<preset>.csv)")
        parser.add_argument(
            "--presets",
            default=DEFAULT_CONFIG["presets_file"],
            help="Preset store file",
        )
        parser.add_argument(
            "--list-dir", help="Directory holding the IP list files"
        )
        cls._add_upload_args(parser)

    @staticmethod
    def _add_presets_command(subparsers: Any) -> None:
        parser = subparsers.add_parser("presets", help="Manage filter presets")
        parser.add_argument(
            "--presets",
            default=DEFAULT_CONFIG["presets_file"],
            help="Preset store file",
        )
        actions = parser.add_subparsers(dest="action", required=True)

        actions.add_parser("list", help="List all available presets")

        show = actions.add_parser("show", help="Show one preset")
        show.add_argument("name")

        delete = actions.add_parser("delete", help="Delete every preset with a name")
        delete.add_argument("name")

        add = actions.add_parser("add", help="Save a new preset")
        add.add_argument("--name", required=True, help="Preset name")
        add.add_argument(
            "--flow-status",
            choices=[status.value for status in FlowStatus],
            default=FlowStatus.ALLOWED.value,
            help="Flow status the preset applies to",
        )
        add.add_argument(
            "--condition",
            action="append",
            required=True,
            help="Condition like 'sourceIP == lista.txt,Internet' (repeatable)",
        )

    @staticmethod
    def _add_web_command(subparsers: Any) -> None:
        parser = subparsers.add_parser("web", help="Serve the preset web API")
        parser.add_argument("--host", default="127.0.0.1", help="Bind address")
        parser.add_argument("--port", type=int, default=8000, help="Bind port")
        parser.add_argument(
            "--presets",
            default=DEFAULT_CONFIG["presets_file"],
            help="Preset store file",
        )


class UploadStep:
    """Decides whether and what to upload after a run."""

    def __init__(self, args: argparse.Namespace):
        self.skip = args.nos3
        self.s3_config = args.s3_config

    def run(self, file_path: str, preset_name: Optional[str] = None) -> Optional[str]:
        if self.skip:
            return None

        target = select_target(load_upload_targets(self.s3_config), preset_name)
        if target is None:
            raise ConfigError(
                f"No S3 configuration found in {self.s3_config}. Use --nos3 to skip the upload."
            )

        uri = upload_file(target, file_path)
        print(f"File successfully uploaded to S3 bucket {target.bucket_name}")
        return uri


class RetrieveCommand:
    """Runs a day export."""

    def __init__(self, args: argparse.Namespace):
        self.args = args

    def run(self) -> dict[str, Any]:
        target_date = parse_target_date(self.args.date)
        output_file = self.args.out or f"{format_target_date(target_date)}.csv"

        config = RetrievalConfig(
            segment_hours=self.args.segment_hours,
            max_workers=self.args.workers,
            max_attempts=self.args.max_attempts,
        )
        config.validate()
        credentials = resolve_credentials(self.args.config, self.args.tenant)

        print(f"Using CloudSecure: {credentials.name}")
        print(
            f"Retrieving {format_target_date(target_date)} in {24 // config.segment_hours} "
            f"segments of {config.segment_hours}h with {config.max_workers} worker(s)"
        )

        summary = retrieve_day(
            credentials,
            target_date,
            output_file,
            config,
            base_url=self.args.base_url,
        )
        result = summary.to_dict()

        if uri := UploadStep(self.args).run(output_file):
            result["s3_uri"] = uri
            print(
                "Data retrieval, CSV creation and S3 upload completed successfully. "
                f"Output saved to {output_file}"
            )
        else:
            print(
                "Data retrieval and CSV creation completed successfully. "
                f"S3 upload skipped. Output saved to {output_file}"
            )
        return result


class FilterCommand:
    """Runs one preset over a flow file."""

    def __init__(self, args: argparse.Namespace):
        self.args = args

    def run(self) -> dict[str, Any]:
        preset = PresetStore(self.args.presets).find(self.args.preset)
        output_file = self.args.output or output_file_name(self.args.input, preset.name)

        result = apply_preset(
            self.args.input, preset, output_file, list_dir=self.args.list_dir
        )
        print(f"Filtering complete: {result}. Output saved to {output_file}")

        data = result.to_dict()
        data["preset"] = preset.name
        if uri := UploadStep(self.args).run(output_file, preset.name):
            data["s3_uri"] = uri
        return data


class PresetsCommand:
    """Manages the saved presets."""

    def __init__(self, args: argparse.Namespace):
        self.args = args
        self.store = PresetStore(args.presets)

    def run(self) -> dict[str, Any]:
        match self.args.action:
            case "list":
                names = self.store.names()
                print("Available presets:")
                for name in names:
                    print(f"- {name}")
                return {"presets": names}
            case "show":
                preset = self.store.find(self.args.name)
                PresetPrinter.print_preset(preset)
                return preset.to_json_dict()
            case "delete":
                removed = self.store.delete(self.args.name)
                if not removed:
                    raise ConfigError(f"Preset '{self.args.name}' not found")
                print(f"Deleted preset '{self.args.name}'")
                return {"deleted": removed}
            case "add":
                preset = Preset(
                    name=self.args.name,
                    conditions=[parse_condition(text) for text in self.args.condition],
                    flow_status=self.args.flow_status,
                )
                self.store.add(preset)
                print(f"Preset '{preset.name}' has been saved")
                return preset.to_json_dict()
            case _:
                raise ConfigError(f"Unknown presets action: {self.args.action}")


class PresetPrinter:
    """Handles printing preset details."""

    @staticmethod
    def print_preset(preset: Preset) -> None:
        print(f"\n=== Preset: {preset.name} ===")
        print(f"Flow status: {preset.flow_status.value}")
        print("Conditions (all must hold):")
        for number, condition in enumerate(preset.conditions, start=1):
            print(f"  {number}. {condition}")


def run_web(args: argparse.Namespace) -> int:
    from .web import run_server

    run_server(host=args.host, port=args.port, preset_path=args.presets)
    return 0


COMMANDS = {
    "retrieve": RetrieveCommand,
    "filter": FilterCommand,
    "presets": PresetsCommand,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the CLI."""
    args = ArgumentParser.parse_args(argv)

    if args.command == "web":
        return run_web(args)

    logger = setup_logger("cloudsecure_flows.cli")
    run_id = generate_run_id()
    log_run_start(logger, run_id, **vars(args))

    try:
        result = COMMANDS[args.command](args).run()
        log_run_end(logger, run_id, True, result_data=result, command=args.command)
        return 0
    except (CloudSecureFlowsError, ValueError) as e:
        log_run_end(logger, run_id, False, error=str(e), command=args.command)
        print(f"Error: {e}")
        return 1
    except OSError as e:
        log_run_end(logger, run_id, False, error=str(e), command=args.command)
        print(f"Error: {e}")
        return 1
    except Exception as e:
        log_run_end(logger, run_id, False, error=str(e), command=args.command)
        print(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
