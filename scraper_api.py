"""
HTTP API for the Newswire pipeline
----------------------------------
Flask blueprints over a PipelineRuntime whose event loop runs in a
background thread, so triggered jobs keep running after the request
returns.

Endpoints:
  POST /api/jobs                 - Trigger a job
  GET  /api/jobs                 - List jobs (status, page, page_size)
  GET  /api/jobs/<id>            - Job record
  POST /api/jobs/<id>/cancel     - Request cancellation
  GET  /api/jobs/<id>/logs       - Job log entries (level, page, page_size)
  GET  /api/jobs/<id>/summary    - Error summary, source performance, timeline
  GET  /api/content              - List content (source, language, status, search)
  GET  /api/content/<id>         - Content item
  GET/POST /api/sources          - List / create sources
  GET/PUT/DELETE /api/sources/<id>
  POST /api/sources/<id>/test    - Fetch and parse the feed once
  GET  /api/sources/<id>/health  - Outcomes over recent jobs (recent_jobs)
  POST /api/cleanup/run          - Run cleanup now
  GET  /api/cleanup/stats        - Cleanup and archive statistics
  GET  /api/cleanup/archives/<id> - Decompressed archive record
  GET  /api/monitor/status       - Resource monitor status
"""

from flask import Blueprint, Flask, current_app, jsonify, request
from loguru import logger

from crawler.interfaces.news_source_interface import ValidationError
from monitoring.lifecycle import get_policy
from utils.time_utils import isoformat, utcnow

jobs_bp = Blueprint('jobs', __name__, url_prefix='/api/jobs')
content_bp = Blueprint('content', __name__, url_prefix='/api/content')
sources_bp = Blueprint('sources', __name__, url_prefix='/api/sources')
cleanup_bp = Blueprint('cleanup', __name__, url_prefix='/api/cleanup')
monitor_bp = Blueprint('monitor', __name__, url_prefix='/api/monitor')


def _runtime():
    return current_app.config['PIPELINE_RUNTIME']


def _call(coro):
    return _runtime().call(coro)


def _param(*names, default=None):
    """First query parameter present among ``names`` (snake_case or camelCase)."""
    for name in names:
        value = request.args.get(name)
        if value not in (None, ''):
            return value
    return default


def _int_param(*names, default: int) -> int:
    value = _param(*names)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"Query parameter '{names[0]}' must be an integer")


def _not_found(kind: str, identifier: str):
    return jsonify({'error': f"{kind} '{identifier}' not found"}), 404


# ── Jobs ─────────────────────────────────────────────────────────────

@jobs_bp.route('', methods=['POST'])
def trigger_job():
    """
    Trigger a scraping job.

    Request body:
    {
        "sources": ["bbc.co.uk", "..."],
        "articlesPerSource": 3  // Optional
    }
    """
    data = request.get_json(silent=True) or {}
    sources = data.get('sources')
    if not isinstance(sources, list):
        raise ValidationError("'sources' must be a list of source identifiers")
    articles = data.get('articlesPerSource', data.get('articles_per_source'))

    job_id = _call(_runtime().orchestrator.trigger(sources, articles))
    job = _call(_runtime().store.get_job(job_id))
    logger.info(f"Received job trigger via API: {job_id}")
    return jsonify(job), 202


@jobs_bp.route('', methods=['GET'])
def list_jobs():
    result = _call(_runtime().store.list_jobs(
        status=_param('status'),
        page=_int_param('page', default=1),
        page_size=_int_param('page_size', 'pageSize', default=20),
    ))
    return jsonify(result), 200


@jobs_bp.route('/<job_id>', methods=['GET'])
def get_job(job_id):
    job = _call(_runtime().orchestrator.get_job_status(job_id))
    if job is None:
        return _not_found('Job', job_id)
    return jsonify(job), 200


@jobs_bp.route('/<job_id>/cancel', methods=['POST'])
def cancel_job(job_id):
    data = request.get_json(silent=True) or {}
    reason = data.get('reason') or 'cancelled via API'
    if _call(_runtime().store.get_job(job_id)) is None:
        return _not_found('Job', job_id)
    cancelled = _call(_runtime().orchestrator.cancel(job_id, reason))
    return jsonify({'job_id': job_id, 'cancelled': cancelled}), 202 if cancelled else 409


@jobs_bp.route('/<job_id>/logs', methods=['GET'])
def get_job_logs(job_id):
    if _call(_runtime().store.get_job(job_id)) is None:
        return _not_found('Job', job_id)
    result = _call(_runtime().store.get_job_logs(
        job_id,
        level=_param('level'),
        page=_int_param('page', default=1),
        page_size=_int_param('page_size', 'pageSize', default=50),
    ))
    return jsonify(result), 200


@jobs_bp.route('/<job_id>/summary', methods=['GET'])
def get_job_summary(job_id):
    summary = _call(_runtime().store.get_job_summary(job_id))
    if summary is None:
        return _not_found('Job', job_id)
    return jsonify(summary), 200


# ── Content ──────────────────────────────────────────────────────────

@content_bp.route('', methods=['GET'])
def list_content():
    result = _call(_runtime().store.list_content(
        source_id=_param('source', 'source_id', 'sourceId'),
        language=_param('language'),
        status=_param('status', 'processing_status', 'processingStatus'),
        search=_param('search', 'q'),
        page=_int_param('page', default=1),
        page_size=_int_param('page_size', 'pageSize', default=20),
    ))
    return jsonify(result), 200


@content_bp.route('/<item_id>', methods=['GET'])
def get_content(item_id):
    include_html = _param('include_html', 'includeHtml', default='false').lower() == 'true'
    item = _call(_runtime().store.get_content(item_id, include_html=include_html))
    if item is None:
        return _not_found('Content item', item_id)
    return jsonify(item), 200


# ── Sources ──────────────────────────────────────────────────────────

@sources_bp.route('', methods=['GET'])
def list_sources():
    active_only = _param('active', default='false').lower() == 'true'
    sources = _call(_runtime().registry.list_sources(active_only=active_only))
    return jsonify({'items': sources, 'total': len(sources)}), 200


@sources_bp.route('', methods=['POST'])
def create_source():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    source = _call(_runtime().registry.create_source(data))
    return jsonify(source), 201


@sources_bp.route('/<source_id>', methods=['GET'])
def get_source(source_id):
    source = _call(_runtime().registry.get_source(source_id))
    if source is None:
        return _not_found('Source', source_id)
    return jsonify(source), 200


@sources_bp.route('/<source_id>', methods=['PUT', 'PATCH'])
def update_source(source_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    source = _call(_runtime().registry.update_source(source_id, data))
    if source is None:
        return _not_found('Source', source_id)
    return jsonify(source), 200


@sources_bp.route('/<source_id>', methods=['DELETE'])
def delete_source(source_id):
    if not _call(_runtime().registry.delete_source(source_id)):
        return _not_found('Source', source_id)
    return '', 204


@sources_bp.route('/<source_id>/test', methods=['POST'])
def test_source(source_id):
    result = _call(_runtime().registry.test_source(source_id))
    if result is None:
        return _not_found('Source', source_id)
    return jsonify(result), 200


@sources_bp.route('/<source_id>/health', methods=['GET'])
def source_health(source_id):
    recent = _int_param('recent_jobs', 'recentJobs', default=20)
    if recent < 1:
        raise ValidationError("Query parameter 'recent_jobs' must be positive")
    health = _call(_runtime().registry.get_source_health(source_id, recent_jobs=recent))
    if health is None:
        return _not_found('Source', source_id)
    return jsonify(health), 200


# ── Cleanup and monitoring ───────────────────────────────────────────

@cleanup_bp.route('/run', methods=['POST'])
def run_cleanup():
    """
    Run a cleanup pass now.

    Request body (optional JSON):
    {
        "policy": "aggressive"  // default | aggressive | conservative
    }
    """
    data = request.get_json(silent=True) or {}
    policy = None
    if data.get('policy'):
        try:
            policy = get_policy(data['policy'])
        except ValueError as e:
            raise ValidationError(str(e))

    result = _call(_runtime().cleanup.run_cleanup(reason="api", policy=policy))
    status_code = 500 if result['status'] == 'failed' else 200
    return jsonify(result), status_code


@cleanup_bp.route('/stats', methods=['GET'])
def cleanup_stats():
    return jsonify(_call(_runtime().cleanup.get_statistics())), 200


@cleanup_bp.route('/archives/<archive_id>', methods=['GET'])
def get_archive(archive_id):
    archive = _call(_runtime().cleanup.get_archive_payload(archive_id))
    if archive is None:
        return _not_found('Archive', archive_id)
    return jsonify(archive), 200


@monitor_bp.route('/status', methods=['GET'])
def monitor_status():
    runtime = _runtime()
    status = runtime.monitor.get_status()
    status.update({
        'active_jobs': runtime.orchestrator.active_jobs,
        'concurrency_limit': runtime.orchestrator.limiter.limit,
        'effective_concurrency': runtime.orchestrator.limiter.effective_limit,
        'active_pipelines': runtime.orchestrator.limiter.active,
        'duplicates': runtime.duplicate_detector.get_statistics(),
        'errors': runtime.error_handler.get_statistics(),
        'timestamp': isoformat(utcnow()),
    })
    return jsonify(status), 200


def _handle_validation_error(error):
    return jsonify({'error': str(error)}), 400


def create_app(runtime) -> Flask:
    """
    Build the Flask application around a started PipelineRuntime.

    Args:
        runtime: PipelineRuntime with its background loop running
    """
    app = Flask(__name__)
    app.config['PIPELINE_RUNTIME'] = runtime
    for blueprint in (jobs_bp, content_bp, sources_bp, cleanup_bp, monitor_bp):
        app.register_blueprint(blueprint)
    app.register_error_handler(ValidationError, _handle_validation_error)

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({
            'status': 'healthy',
            'service': 'newswire-pipeline',
            'timestamp': isoformat(utcnow()),
        }), 200

    logger.info("✅ API routes registered")
    return app
