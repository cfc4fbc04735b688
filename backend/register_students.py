"""
Batch Registration Script - registers students from a JSON file via the API.

Each entry goes through the same pipeline as the registration form: the
photo is checked and turned into an avatar, the fields are validated, and
the record is posted to the students API.

Input file format:
    [
        {
            "variant": "course",
            "photo": "photos/jane.jpg",
            "fields": {"first_name": "jane", "last_name": "doe", ...}
        },
        ...
    ]

Usage:
    python register_students.py students.json                        # Uses default URL
    python register_students.py students.json http://localhost:8000  # Custom API URL
"""

import asyncio
import json
import os
import sys
from dataclasses import replace

from registration.client.context import AppContext, ClientSettings
from registration.client.form import RegistrationForm, COURSE_FORM, CONTACT_FORM
from registration.client.images import UploadedImage
from registration.logging_config import setup_logging

SCHEMAS = {COURSE_FORM.variant: COURSE_FORM, CONTACT_FORM.variant: CONTACT_FORM}


async def register_entry(context: AppContext, entry: dict) -> dict:
    schema = SCHEMAS.get(entry.get("variant", COURSE_FORM.variant))
    if schema is None:
        return {"status": "REJECTED", "errors": {"variant": "Unknown variant"}}

    form = RegistrationForm(context, schema)

    photo = entry.get("photo")
    if photo:
        if not os.path.exists(photo):
            return {"status": "REJECTED", "errors": {"avatar": "Photo not found: {}".format(photo)}}
        await context.avatar_handler.handle_upload(UploadedImage.from_path(photo))

    for name, value in (entry.get("fields") or {}).items():
        form.set_value(name, str(value))

    if await form.submit():
        return {"status": "REGISTERED", "id": form.last_record.get("id")}
    if form.errors:
        errors = dict(form.errors)
        if context.avatar_handler.error:
            errors["avatar"] = context.avatar_handler.error
        context.avatar_handler.reset()
        return {"status": "REJECTED", "errors": errors}
    context.avatar_handler.reset()
    return {"status": "FAILED", "reason": form.message}


async def run(data_file: str, api_url: str) -> int:
    with open(data_file, 'r') as f:
        entries = json.load(f)

    print(f"Loaded {len(entries)} entries from {data_file}")
    print(f"Registering with {api_url}/students ...")

    settings = replace(ClientSettings.from_env(), api_url=api_url, success_display_seconds=0)
    context = AppContext.build(settings)
    results = []
    try:
        for entry in entries:
            results.append(await register_entry(context, entry))
        total = await context.repository.count()
    finally:
        await context.aclose()

    registered = sum(1 for r in results if r["status"] == "REGISTERED")
    rejected = sum(1 for r in results if r["status"] == "REJECTED")
    failed = sum(1 for r in results if r["status"] == "FAILED")

    print(f"\n{'='*50}")
    print(f"  Registration Summary")
    print(f"{'='*50}")
    print(f"  Entries:         {len(entries)}")
    print(f"  Registered:      {registered}")
    print(f"  Rejected:        {rejected}")
    print(f"  Failed:          {failed}")
    print(f"  Students in DB:  {total}")
    print(f"{'='*50}")

    for i, result in enumerate(results, 1):
        if result["status"] == "REJECTED":
            for field_name, message in result["errors"].items():
                print(f"  #{i} {field_name}: {message}")
        elif result["status"] == "FAILED":
            print(f"  #{i} failed: {result['reason']}")

    return 0 if failed == 0 else 1


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)

    data_file = sys.argv[1]
    if not os.path.exists(data_file):
        print(f"Error: Could not find {data_file}")
        sys.exit(1)

    api_url = sys.argv[2] if len(sys.argv) > 2 else os.getenv("API_URL", "http://localhost:8000")

    setup_logging()
    sys.exit(asyncio.run(run(data_file, api_url.rstrip("/"))))


if __name__ == "__main__":
    main()
