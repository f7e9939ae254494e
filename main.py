"""
Contact Relay
=============
Language  : Python
Framework : Flask + Gunicorn

Accepts a contact-form inquiry as JSON, renders it to an HTML email and
relays it over SMTP to one configured recipient.

Layers:
  config.py     — Immutable configuration from the environment / .env
  transport.py  — SMTP delivery (the only module that knows SMTP)
  templates.py  — Submission fields, validation and rendering
  relay.py      — validate -> render -> relay -> map outcome

Run locally : python main.py
Production  : gunicorn  (settings in gunicorn.conf.py: gthread workers, so one slow
              SMTP send never blocks the other requests)
"""

import os
import logging
from flask import Flask, request, jsonify

import config
import relay
import transport


def log_level(name: str | None) -> int:
    """LOG_LEVEL name -> logging level; unknown names fall back to INFO."""
    level = logging.getLevelName((name or 'INFO').strip().upper())
    return level if isinstance(level, int) else logging.INFO


config.load_environment()
logging.basicConfig(
    level=log_level(os.environ.get('LOG_LEVEL')),
    format='%(asctime)s [contact-relay] %(levelname)s %(message)s'
)
log = logging.getLogger(__name__)

HTTP_STATUS = {
    relay.Outcome.SENT:        200,
    relay.Outcome.INVALID:     400,
    relay.Outcome.UNAVAILABLE: 503,
    relay.Outcome.TIMEOUT:     504,
    relay.Outcome.INTERNAL:    500,
}


def build_relay(verify: bool = True) -> relay.SubmissionRelay:
    """
    Read the environment once and wire config -> transport -> relay.
    A configuration error is reported and leaves the relay unconfigured,
    so every send answers 500 instead of half-working.
    """
    config.load_environment()
    try:
        cfg = config.load_config()
    except config.ConfigError as e:
        log.error(f"Email service disabled: {e}")
        return relay.SubmissionRelay(None, None)

    smtp = transport.SMTPTransport(cfg)
    log.info(f"  Transport: SMTP {cfg.host}:{cfg.port} "
             f"(tls={'implicit' if cfg.secure else 'starttls'}, env={cfg.environment})")
    if verify:
        smtp.verify()
    return relay.SubmissionRelay(cfg, smtp)


def create_app(submission_relay: relay.SubmissionRelay | None = None) -> Flask:
    if submission_relay is None:
        submission_relay = build_relay()

    app = Flask(__name__)
    app.config['RELAY'] = submission_relay

    @app.route('/health')
    def health():
        r = app.config['RELAY']
        return jsonify({
            "status": "healthy" if r.configured else "degraded",
            "service": "contact-relay",
            "configured": r.configured,
            "transport": r.config.summary() if r.config else None,
        })

    @app.route('/', methods=['POST'])
    @app.route('/send-email', methods=['POST'])
    def send_email():
        data = request.get_json(silent=True)
        result = app.config['RELAY'].handle(data)

        if result.success:
            body = {
                "success": True,
                "messageId": result.message_id,
                "response": result.response,
            }
        else:
            body = {"success": False, "message": result.error_message}
            if result.detail:
                body["error"] = result.detail

        return jsonify(body), HTTP_STATUS[result.outcome]

    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 3001))
    log.info(f"Contact Relay starting on :{port}")
    create_app().run(host='0.0.0.0', port=port)
