"""
Chunked file upload script for the Project Files API with WebSocket progress

Usage:
    python upload_file.py PROJECT_ID path/to/file [--parent FOLDER_ID]
"""
import argparse
import asyncio
import json
import math
import mimetypes
import os
import time
from threading import Thread

import requests
import websockets

# Configuration
BASE_URL = os.getenv("PROJECT_FILES_URL", "http://localhost:8000")
USER_ID = os.getenv("PROJECT_FILES_USER", "")
CHUNK_SIZE = 1024 * 1024  # 1 MB


def websocket_url(client_id):
    scheme, rest = BASE_URL.split("://", 1)
    ws_scheme = "wss" if scheme == "https" else "ws"
    return f"{ws_scheme}://{rest}/ws/{client_id}"


async def websocket_listener(client_id):
    """Listen to WebSocket for real-time progress updates"""
    try:
        print("\n🔌 Connecting to WebSocket...")
        async with websockets.connect(websocket_url(client_id)) as websocket:
            print("✅ WebSocket connected!")
            print("\n" + "=" * 60)
            print("📊 Upload Progress:")
            print("=" * 60)

            while True:
                try:
                    message = await asyncio.wait_for(websocket.recv(), timeout=60.0)
                except asyncio.TimeoutError:
                    # Send ping to keep connection alive
                    await websocket.send("ping")
                    continue

                data = json.loads(message)
                if data.get("type") == "progress":
                    progress = data.get("progress", 0)
                    bar_length = 40
                    filled = int(bar_length * progress / 100)
                    bar = "█" * filled + "░" * (bar_length - filled)
                    print(f"\r[{bar}] {progress}% - {data.get('message', '')}", end="", flush=True)
                elif data.get("type") == "complete":
                    print(f"\n\n✅ {data.get('message', 'Upload complete!')}")
                    break
                elif data.get("type") == "error":
                    print(f"\n\n❌ {data.get('message', 'Upload error!')}")
                    break
    except (OSError, websockets.exceptions.WebSocketException) as e:
        print(f"\n⚠️  WebSocket error: {e}")


def upload_file(project_id, file_path, parent_id=None, use_websocket=True):
    """Upload one file in CHUNK_SIZE pieces; returns the final chunk response"""
    file_name = os.path.basename(file_path)
    file_size = os.path.getsize(file_path)
    total_chunks = max(1, math.ceil(file_size / CHUNK_SIZE))
    mime_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"

    print(f"\n📤 Uploading file: {file_path} ({file_size} bytes, {total_chunks} chunk(s))")

    client_id = f"upload-{int(time.time() * 1000)}"
    ws_thread = None
    if use_websocket:
        ws_thread = Thread(target=lambda: asyncio.run(websocket_listener(client_id)), daemon=True)
        ws_thread.start()
        time.sleep(1)  # Give WebSocket time to connect

    session_id = None
    result = None
    with open(file_path, "rb") as f:
        for chunk_index in range(total_chunks):
            data = {
                "file_name": file_name,
                "file_size": file_size,
                "chunk_index": chunk_index,
                "total_chunks": total_chunks,
                "mime_type": mime_type,
                "client_id": client_id if use_websocket else "",
            }
            if session_id:
                data["session_id"] = session_id
            if parent_id:
                data["parent_id"] = parent_id

            response = requests.post(
                f"{BASE_URL}/api/projects/{project_id}/uploads/chunks",
                headers={"X-User-Id": USER_ID},
                files={"chunk": (file_name, f.read(CHUNK_SIZE), "application/octet-stream")},
                data=data,
                timeout=120,
            )
            if response.status_code != 200:
                print(f"\n❌ Chunk {chunk_index} failed: {response.status_code}")
                print(f"   Response: {response.text}")
                return None

            result = response.json()
            session_id = result["session_id"]

    if ws_thread:
        ws_thread.join(timeout=10)

    print("\n" + "=" * 60)
    print("✅ Upload API Response:")
    print(f"   Node: {result.get('node_id')}")
    print(f"   Chunks: {result['received_chunks']}/{result['total_chunks']}")
    return result


def main():
    parser = argparse.ArgumentParser(description="Upload a file to a project in chunks")
    parser.add_argument("project_id")
    parser.add_argument("file_path")
    parser.add_argument("--parent", dest="parent_id", default=None, help="Target folder id")
    parser.add_argument("--no-websocket", action="store_true")
    args = parser.parse_args()

    if not USER_ID:
        print("❌ Set PROJECT_FILES_USER to the user id to upload as")
        return

    print("=" * 60)
    print("Project Files Upload Script")
    print("=" * 60)

    result = upload_file(args.project_id, args.file_path, args.parent_id, not args.no_websocket)

    print("\n" + "=" * 60)
    if result and result.get("complete"):
        print("🎉 Upload completed successfully!")
    else:
        print("⚠️  Upload failed")
    print("=" * 60)


if __name__ == "__main__":
    main()
