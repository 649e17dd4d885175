#!/usr/bin/env python3
from __future__ import annotations

import asyncio
import json
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class Scenario:
  name: str
  role: str
  message: str
  expect_sections: bool


SCENARIOS = [
  Scenario(
    name="Doctor Structured Answer",
    role="doctor",
    message="Summarize the evidence for SGLT2 inhibitors in heart failure with preserved ejection fraction.",
    expect_sections=True,
  ),
  Scenario(
    name="Patient Education Answer",
    role="patient",
    message="What does it mean if my heart skips a beat sometimes?",
    expect_sections=False,
  ),
]


async def run_scenario(scenario: Scenario, settings: Any) -> dict[str, Any]:
  from clara_api import ClinicalApiClient
  from clara_chat import STREAM_ERROR_MESSAGE, ChatConversation, SectionLayout, parse_sections

  result: dict[str, Any] = {"name": scenario.name, "role": scenario.role}
  chunk_sizes: list[int] = []

  async with ClinicalApiClient.from_settings(settings) as api:
    conversation = ChatConversation(api, scenario.role, session_header=settings.session_header)
    conversation.observers.add_content_listener(lambda text: chunk_sizes.append(len(text)))
    reply = await conversation.send(scenario.message)
    await conversation.drain_background_tasks()

    result["session_id"] = conversation.session_id
    session = conversation.sessions.find(conversation.session_id) if conversation.session_id is not None else None
    result["session_name"] = session.session_name if session else None

  content = reply.content if reply else ""
  result["chunks_published"] = len(chunk_sizes)
  result["reply_preview"] = content[:240]

  if not content or content == STREAM_ERROR_MESSAGE:
    result["pass"] = False
    result["error"] = "No streamed reply received."
    return result

  sections = parse_sections(content)
  layout = SectionLayout.from_sections(sections)
  result["sections"] = [section.title for section in sections]
  result["layout"] = {
    "main": [section.title for section in layout.group.main],
    "hidden": [section.title for section in layout.group.hidden],
    "others": [section.title for section in layout.group.others],
  }

  # Smoke success criterion: a non-empty reply, a bound session, and headings where they are expected.
  structured = any(title != "Key Summary" for title in result["sections"])
  result["pass"] = bool(chunk_sizes) and result["session_id"] is not None and (structured or not scenario.expect_sections)
  if not result["pass"]:
    result["error"] = "Reply arrived without a session binding or without the expected section headings."
  return result


def run() -> int:
  repo_root = Path(__file__).resolve().parents[1]
  backend_dir = repo_root / "backend"
  if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

  from clara_api import ClientSettings, bootstrap_local_env

  bootstrap_local_env()
  settings = ClientSettings.from_env()
  if not settings.api_token:
    print("CLARA_API_TOKEN is not set; the clinical API will reject the smoke run.")

  results: list[dict[str, Any]] = []
  for scenario in SCENARIOS:
    try:
      results.append(asyncio.run(run_scenario(scenario, settings)))
    except Exception as exc:
      results.append({"name": scenario.name, "role": scenario.role, "pass": False, "error": repr(exc)})

  passed = sum(1 for item in results if item.get("pass"))
  failed = len(results) - passed
  timestamp = datetime.now(timezone.utc).isoformat()

  report_lines = [
    "# Chat Streaming Smoke Report",
    "",
    f"- Timestamp (UTC): `{timestamp}`",
    f"- CLARA_API_BASE_URL: `{settings.api_base_url}`",
    f"- CLARA_SESSION_HEADER: `{settings.session_header}`",
    f"- CLARA_LOG_LEVEL: `{os.getenv('CLARA_LOG_LEVEL')}`",
    f"- Total scenarios: `{len(results)}`",
    f"- Passed: `{passed}`",
    f"- Failed: `{failed}`",
    "",
    "## Scenario Results",
    "",
  ]

  for item in results:
    status = "PASS" if item.get("pass") else "FAIL"
    report_lines.append(f"### {status} - {item['name']}")
    report_lines.append(f"- Role: `{item.get('role')}`")
    report_lines.append(f"- Session: `{item.get('session_id')}` ({item.get('session_name')!r})")
    report_lines.append(f"- Chunks published: `{item.get('chunks_published')}`")
    if item.get("error"):
      report_lines.append(f"- Error: `{item['error']}`")
    preview = item.get("reply_preview") or ""
    if preview:
      report_lines.append(f"- Reply preview: `{preview}`")
    report_lines.append("- Section layout:")
    report_lines.append("```json")
    report_lines.append(json.dumps(item.get("layout"), indent=2, ensure_ascii=True))
    report_lines.append("```")
    report_lines.append("")

  report_path = repo_root / "CHAT_SMOKE_REPORT.md"
  report_path.write_text("\n".join(report_lines), encoding="utf-8")
  print(f"Wrote report: {report_path}")
  print(f"Passed {passed}/{len(results)} scenarios.")

  return 0 if failed == 0 else 1


if __name__ == "__main__":
  raise SystemExit(run())
