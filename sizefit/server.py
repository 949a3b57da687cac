"""
HTTP boundary
Flask app exposing the dispatcher at /api/compress-media, /api/convert and
/api/resize-image. Uploads live in a per-request workspace; a scheduled
sweeper removes workspaces abandoned by interrupted requests.
"""

import io
import os
import logging
import threading
from typing import Any, Callable, Optional, Tuple

import schedule
from flask import Flask, jsonify, request, send_file
from werkzeug.utils import secure_filename

from .config_manager import ConfigManager
from .dispatcher import DispatchResult, MediaDispatcher
from .error_handler import ErrorHandler, SizeFitError
from .ffmpeg_utils import FFmpegUtils
from .workspace import Workspace

logger = logging.getLogger(__name__)


class WorkspaceSweeper:
    """Background thread running a schedule job that sweeps stale workspaces"""

    def __init__(self, root: Optional[str], max_age_seconds: float, interval_seconds: int = 30):
        self.root = root
        self.max_age_seconds = max_age_seconds
        self.scheduler = schedule.Scheduler()
        self.scheduler.every(interval_seconds).seconds.do(self.sweep)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sweep(self) -> int:
        return Workspace.sweep_stale(self.root, self.max_age_seconds)

    def start(self):
        if self._thread is None:
            self._thread = threading.Thread(target=self._loop, name='workspace-sweeper', daemon=True)
            self._thread.start()

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def _loop(self):
        while not self._stop.is_set():
            self.scheduler.run_pending()
            self._stop.wait(1.0)


def create_app(config: Optional[ConfigManager] = None, dispatcher: Optional[MediaDispatcher] = None,
               start_sweeper: bool = True) -> Flask:
    config = config or ConfigManager()
    dispatcher = dispatcher or MediaDispatcher(config)
    error_handler = ErrorHandler(max_history=int(config.get('server.error_history', 100)))
    workspace_root = config.get('workspace.root')

    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = int(float(config.get('server.max_upload_mb', 100)) * 1024 * 1024)
    app.extensions['sizefit.dispatcher'] = dispatcher
    app.extensions['sizefit.error_handler'] = error_handler

    if start_sweeper:
        sweeper = WorkspaceSweeper(
            workspace_root,
            max_age_seconds=float(config.get('server.cleanup_after_seconds', 60)),
            interval_seconds=int(config.get('server.sweep_interval_seconds', 30)),
        )
        sweeper.start()
        app.extensions['sizefit.sweeper'] = sweeper

    def handle_upload(field: str, operation: str,
                      run: Callable[[str, str, Any, Workspace], Tuple[DispatchResult, str]]):
        """Save the upload into a fresh workspace, run the operation and send its output.

        run(upload_path, filename, upload, workspace) returns the result and the
        download name. File outputs keep their workspace until the response closes.
        """
        upload = request.files.get(field)
        if upload is None or not upload.filename:
            return jsonify(error=f'No {field} file provided'), 400

        filename = secure_filename(upload.filename) or 'upload'
        workspace = Workspace.create(workspace_root)
        cleanup_now = True
        try:
            upload_path = workspace.path_for('upload', os.path.splitext(filename)[1].lower())
            upload.save(upload_path)

            result, download_name = run(upload_path, filename, upload, workspace)

            if result.path:
                response = send_file(result.path, mimetype=result.mime_type, as_attachment=True,
                                     download_name=download_name)
                response.call_on_close(workspace.cleanup)
                cleanup_now = False
            else:
                response = send_file(io.BytesIO(result.data), mimetype=result.mime_type, as_attachment=True,
                                     download_name=download_name)
            response.headers.update(result.headers())
            return response
        except SizeFitError as e:
            error = error_handler.handle_error(e, filename, context=operation)
            return jsonify(error=str(e)), error.category.http_status
        except Exception as e:
            logger.exception(f"Unexpected failure in {operation} for {filename}")
            error = error_handler.handle_error(e, filename, context=operation)
            return jsonify(error=str(e) or f'{operation} failed'), error.category.http_status
        finally:
            if cleanup_now:
                workspace.cleanup()

    @app.route('/api/health', methods=['GET'])
    def health():
        stats = dispatcher.pool.stats()
        return jsonify(status='ok', active=stats['active'], queued=stats['queued'],
                       ffmpeg=FFmpegUtils.is_tool_available('ffmpeg'),
                       errors=error_handler.get_error_summary())

    @app.route('/api/compress-media', methods=['POST'])
    def compress_media():
        def run(upload_path, filename, upload, workspace):
            result = dispatcher.compress(
                upload_path,
                request.form.get('targetSizeBytes'),
                workspace,
                filename=filename,
                mime_type=upload.mimetype,
                target_mb=request.form.get('targetSizeMB'),
            )
            stem = os.path.splitext(filename)[0] or 'media'
            return result, f"compressed-{stem}.{result.extension}"

        return handle_upload('media', 'compress-media', run)

    @app.route('/api/convert', methods=['POST'])
    def convert():
        def run(upload_path, filename, upload, workspace):
            result = dispatcher.convert(
                upload_path,
                workspace,
                fps=request.form.get('fps'),
                width=request.form.get('width'),
                height=request.form.get('height'),
                filename=filename,
            )
            return result, 'converted.gif'

        return handle_upload('video', 'convert', run)

    @app.route('/api/resize-image', methods=['POST'])
    def resize_image():
        def run(upload_path, filename, upload, workspace):
            result = dispatcher.resize(
                upload_path,
                request.form.get('width'),
                request.form.get('height'),
                filename=filename,
                mime_type=upload.mimetype,
            )
            stem = os.path.splitext(filename)[0] or 'image'
            return result, f"resized-{stem}.{result.extension}"

        return handle_upload('image', 'resize-image', run)

    return app
