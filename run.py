import os

from donations_api import create_app
from donations_api.realtime import socketio

app = create_app()

if __name__ == "__main__":
    port = int(os.getenv("PORT", 5050))
    socketio.run(
        app,
        host=os.getenv("HOST", "127.0.0.1"),
        port=port,
        debug=False,
        use_reloader=False,
        log_output=True,
    )

# Local run:
# docker compose --env-file .env.docker up -d
# alembic upgrade head && python scripts/seed.py
# PORT=5050 python run.py
# rq worker -u $REDIS_URL --with-scheduler   (only with USE_EMAIL_QUEUE=1)
