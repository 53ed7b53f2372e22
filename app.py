import os

from dotenv import load_dotenv
from flask import Flask, jsonify, redirect, request, session, url_for

from rewriter.api import init_rewriter

load_dotenv()

# Configuration
ACCESS_PASSWORD = os.getenv('ACCESS_PASSWORD', 'change-me')
MAX_CONTENT_LENGTH = 20 * 1024 * 1024  # 20MB of text is far beyond any rewrite job


def create_app(orchestrator=None):
    app = Flask(__name__)
    app.secret_key = os.getenv('SECRET_KEY', 'your-secret-key-here')
    app.config['MAX_CONTENT_LENGTH'] = MAX_CONTENT_LENGTH

    @app.route('/')
    def index():
        if session.get('authenticated', False):
            return jsonify({"authenticated": True})
        return jsonify({"authenticated": False, "login": url_for('authenticate')})

    @app.route('/auth', methods=['POST'])
    def authenticate():
        password = request.form.get('password') or (request.get_json(silent=True) or {}).get('password')
        if password == ACCESS_PASSWORD:
            session['authenticated'] = True
            return redirect(url_for('index'))
        return jsonify({"error": "Invalid password"}), 401

    @app.route('/logout')
    def logout():
        session.pop('authenticated', None)
        return redirect(url_for('index'))

    @app.route('/api/health')
    def health():
        return jsonify({"status": "ok"})

    init_rewriter(app, orchestrator=orchestrator)
    return app


if __name__ == '__main__':
    create_app().run(debug=True, host='0.0.0.0', port=5000)
