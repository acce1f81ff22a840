import uvicorn
import argparse
from fieldops.main import app

if __name__ == "__main__":
    # Command-line options
    parser = argparse.ArgumentParser(description="Start the field operations billing API")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host address to bind")
    parser.add_argument("--port", type=int, default=3000, help="Port to listen on")
    parser.add_argument("--reload", action="store_true", help="Auto-reload in development")
    parser.add_argument("--env", type=str, default=None, help="Environment: test/prod/local")
    args = parser.parse_args()

    if args.env:
        from fieldops.config import settings
        settings.set_environment(args.env)

    uvicorn.run(
        "fieldops.main:app" if args.reload else app,
        host=args.host,
        port=args.port,
        reload=args.reload
    )
