"""
Command Line Interface for SizeFit
Compress a single image or GIF to a target size, turn a video into a GIF,
resize an image to exact dimensions, or serve the HTTP API
"""

import argparse
import os
import sys
import traceback
from typing import List, Optional

from tqdm import tqdm

from .config_manager import ConfigManager
from .dispatcher import MediaDispatcher
from .error_handler import ErrorHandler, SizeFitError
from .logger_setup import setup_logging
from .workspace import Workspace

logger = None  # Will be initialized after logging setup

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_TARGET_MISSED = 3


class SizeFitCLI:
    def __init__(self):
        self.config: Optional[ConfigManager] = None
        self.error_handler = ErrorHandler()

    def main(self, argv: Optional[List[str]] = None) -> int:
        """Main entry point. Returns the process exit code."""
        global logger
        args = self._parse_arguments(argv)

        try:
            self.config = ConfigManager(args.config_dir)
            effective_level = 'DEBUG' if args.debug else args.log_level
            logger = setup_logging(log_level=effective_level, logs_dir=args.logs_dir,
                                   logging_config=self.config.get('logging'))
            self.config.update_from_args(self._config_overrides(args))
            if not self.config.validate_config():
                print("Error: invalid configuration, see log for details", file=sys.stderr)
                return EXIT_ERROR

            if args.command == 'serve':
                return self._serve(args)
            if args.command == 'convert':
                return self._convert(args)
            if args.command == 'resize':
                return self._resize(args)
            return self._compress(args)

        except KeyboardInterrupt:
            if logger:
                logger.info("Operation cancelled by user")
            return EXIT_ERROR
        except SizeFitError as e:
            self.error_handler.handle_error(e, getattr(args, 'input', ''), context=args.command)
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_ERROR
        except Exception as e:
            if logger:
                logger.error(f"Unexpected error: {e}")
                logger.debug(traceback.format_exc())
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_ERROR

    def _parse_arguments(self, argv: Optional[List[str]]) -> argparse.Namespace:
        parser = argparse.ArgumentParser(
            prog='sizefit',
            description="SizeFit - Compress images and GIFs to a target file size, "
                        "convert videos to GIF and resize images",
            epilog="Examples:\n"
                   "  %(prog)s compress photo.jpg --target-mb 0.5\n"
                   "  %(prog)s compress clip.gif --target-mb 1 -o small.gif --on-encode-failure skip\n"
                   "  %(prog)s convert clip.mp4 --fps 12 --width 320\n"
                   "  %(prog)s resize logo.png --width 256 --height 256\n"
                   "  %(prog)s serve --port 8000\n",
            formatter_class=argparse.RawDescriptionHelpFormatter
        )
        parser.add_argument('--config-dir', default=None,
                            help='Directory with target_size.yaml / logging.yaml overrides')
        parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                            default=None, help='Console logging level (default: WARNING)')
        parser.add_argument('-v', '--debug', action='store_true',
                            help='Enable verbose debug output in console and logs')
        parser.add_argument('--logs-dir', default='logs', help='Directory for log files (default: logs)')
        parser.add_argument('--workspace-root', help='Parent directory for request workspaces')

        subparsers = parser.add_subparsers(dest='command', required=True)

        compress = subparsers.add_parser('compress', aliases=['c'], help='Compress one file to a target size')
        compress.add_argument('input', help='Source image or GIF')
        target = compress.add_mutually_exclusive_group(required=True)
        target.add_argument('-t', '--target-mb', type=str, metavar='MB', help='Target size in megabytes')
        target.add_argument('--target-bytes', type=str, metavar='BYTES', help='Target size in bytes')
        compress.add_argument('-o', '--output', help='Output path (default: compressed-<name>.<ext> next to input)')
        compress.add_argument('--fallback-format', choices=['jpeg', 'png', 'webp'],
                              help='Output format for sources that are not JPEG, PNG or WEBP')
        compress.add_argument('--on-encode-failure', choices=['abort', 'skip'],
                              help='Animated search policy when a single trial fails')
        compress.add_argument('--require-target', action='store_true',
                              help=f'Exit with code {EXIT_TARGET_MISSED} when the target was not reached')
        compress.add_argument('-q', '--quiet', action='store_true', help='Hide the progress bar')

        convert = subparsers.add_parser('convert', aliases=['v'], help='Convert a video into a looping GIF')
        convert.add_argument('input', help='Source video (anything FFmpeg can read)')
        convert.add_argument('--fps', type=int, help='Frame rate (default from config: 15)')
        convert.add_argument('-W', '--width', type=int, help='Output width in pixels (default from config: 480)')
        convert.add_argument('-H', '--height', type=int,
                             help='Output height in pixels; 0 or omitted keeps the aspect ratio')
        convert.add_argument('-o', '--output', help='Output path (default: converted-<name>.gif next to input)')

        resize = subparsers.add_parser('resize', aliases=['r'], help='Resize an image to exact dimensions')
        resize.add_argument('input', help='Source image')
        resize.add_argument('-W', '--width', type=int, required=True, help='Output width in pixels')
        resize.add_argument('-H', '--height', type=int,
                            help='Output height; the image is letterboxed on transparency. '
                                 'Omit to keep the aspect ratio')
        resize.add_argument('-o', '--output', help='Output path (default: resized-<name>.<ext> next to input)')

        serve = subparsers.add_parser('serve', aliases=['s'], help='Run the HTTP API')
        serve.add_argument('--host', help='Bind address (default from config)')
        serve.add_argument('--port', type=int, help='Port (default from config)')

        args = parser.parse_args(argv)
        aliases = {'c': 'compress', 'v': 'convert', 'r': 'resize', 's': 'serve'}
        args.command = aliases.get(args.command, args.command)
        return args

    @staticmethod
    def _config_overrides(args: argparse.Namespace) -> dict:
        return {
            'workspace.root': args.workspace_root,
            'target_size.fallback_format': getattr(args, 'fallback_format', None),
            'animated.on_encode_failure': getattr(args, 'on_encode_failure', None),
            'server.host': getattr(args, 'host', None),
            'server.port': getattr(args, 'port', None),
        }

    def _compress(self, args: argparse.Namespace) -> int:
        if not os.path.isfile(args.input):
            print(f"Error: input file not found: {args.input}", file=sys.stderr)
            return EXIT_ERROR

        dispatcher = MediaDispatcher(self.config)
        with Workspace(self.config.get('workspace.root')) as workspace, \
                tqdm(desc='Searching', unit='trial', disable=args.quiet, leave=False) as progress:

            def _on_trial(candidate):
                progress.update(1)
                progress.set_postfix(size=candidate.size, scale=candidate.scale)

            result = dispatcher.compress(args.input, args.target_bytes, workspace,
                                         target_mb=args.target_mb, on_trial=_on_trial)
            output_path = args.output or self._default_output_path(args.input, result.extension)
            result.save_to(output_path)

        status = "Target reached" if result.achieved else "Closest possible result generated"
        print(f"Original:   {result.original_size / (1024 * 1024):.2f} MB")
        print(f"Compressed: {result.size / (1024 * 1024):.2f} MB ({result.size} bytes)")
        print(f"Target:     {result.target_bytes / (1024 * 1024):.2f} MB")
        print(f"Status:     {status} after {result.trials} trials")
        print(f"Output:     {output_path}")
        logger.info(f"Wrote {output_path} ({result.size} bytes, achieved={result.achieved})")

        if args.require_target and not result.achieved:
            return EXIT_TARGET_MISSED
        return EXIT_OK

    def _convert(self, args: argparse.Namespace) -> int:
        if not os.path.isfile(args.input):
            print(f"Error: input file not found: {args.input}", file=sys.stderr)
            return EXIT_ERROR

        dispatcher = MediaDispatcher(self.config)
        with Workspace(self.config.get('workspace.root')) as workspace:
            result = dispatcher.convert(args.input, workspace, fps=args.fps, width=args.width, height=args.height)
            output_path = args.output or self._default_output_path(args.input, result.extension, 'converted')
            result.save_to(output_path)

        params = result.params
        print(f"Converted:  {params['width']}x{params['height'] or 'auto'} at {params['fps']} fps, "
              f"{result.size / (1024 * 1024):.2f} MB")
        print(f"Output:     {output_path}")
        logger.info(f"Wrote {output_path} ({result.size} bytes)")
        return EXIT_OK

    def _resize(self, args: argparse.Namespace) -> int:
        if not os.path.isfile(args.input):
            print(f"Error: input file not found: {args.input}", file=sys.stderr)
            return EXIT_ERROR

        result = MediaDispatcher(self.config).resize(args.input, args.width, args.height)
        output_path = args.output or self._default_output_path(args.input, result.extension, 'resized')
        result.save_to(output_path)

        print(f"Resized:    {result.params['width']}x{result.params['height'] or 'auto'} "
              f"({result.size} bytes)")
        print(f"Output:     {output_path}")
        logger.info(f"Wrote {output_path} ({result.size} bytes)")
        return EXIT_OK

    @staticmethod
    def _default_output_path(input_path: str, extension: str, prefix: str = 'compressed') -> str:
        directory, name = os.path.split(os.path.abspath(input_path))
        stem = os.path.splitext(name)[0]
        return os.path.join(directory, f"{prefix}-{stem}.{extension}")

    def _serve(self, args: argparse.Namespace) -> int:
        # Flask is only needed for this command
        from .server import create_app

        app = create_app(self.config)
        host = self.config.get('server.host', '127.0.0.1')
        port = int(self.config.get('server.port', 8000))
        print(f"Server running at http://{host}:{port}")
        logger.info(f"Serving on {host}:{port}")
        app.run(host=host, port=port, threaded=True)
        return EXIT_OK


def main(argv: Optional[List[str]] = None):
    """Entry point for the CLI application"""
    cli = SizeFitCLI()
    sys.exit(cli.main(argv))


if __name__ == '__main__':
    main()
