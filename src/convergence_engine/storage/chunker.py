"""Chunked markdown reports for stored sessions."""

from enum import IntEnum
from pathlib import Path

from convergence_engine.pricing.cost import format_cost
from convergence_engine.session import ConvergenceSession


def _format_history(scores: tuple[int, ...]) -> str:
    return " -> ".join(str(s) for s in scores) or "N/A"


class LoadLevel(IntEnum):
    """Report loading levels for progressive disclosure."""

    METADATA = 0    # task_id, status, score, timestamp
    SUMMARY = 1     # + iterations, tokens, cost
    CONCLUSION = 2  # + final reply
    FULL = 3        # + full conversation


class ChunkManager:
    """Write and read session reports split into marked chunks."""

    MARKERS = {
        "SUMMARY": ("<!-- CHUNK:SUMMARY:START -->", "<!-- CHUNK:SUMMARY:END -->"),
        "CONCLUSION": ("<!-- CHUNK:CONCLUSION:START -->", "<!-- CHUNK:CONCLUSION:END -->"),
        "FULL": ("<!-- CHUNK:FULL:START -->", "<!-- CHUNK:FULL:END -->"),
    }

    CHUNKS_BY_LEVEL = {
        LoadLevel.METADATA: (),
        LoadLevel.SUMMARY: ("SUMMARY",),
        LoadLevel.CONCLUSION: ("SUMMARY", "CONCLUSION"),
        LoadLevel.FULL: ("SUMMARY", "CONCLUSION", "FULL"),
    }

    def load_level(self, file_path: Path, level: LoadLevel) -> dict[str, str]:
        """Load report content at the given level.

        Args:
            file_path: Path to the markdown report
            level: Loading level

        Returns:
            dict with metadata keys plus one key per loaded chunk
            (summary / conclusion / full); empty if the file is missing
        """
        if not file_path.exists():
            return {}

        content = file_path.read_text(encoding="utf-8")
        loaded = self._load_metadata(content)
        for chunk_name in self.CHUNKS_BY_LEVEL[level]:
            loaded.update(self._load_chunk(content, chunk_name))
        return loaded

    def _load_metadata(self, content: str) -> dict[str, str]:
        """Extract metadata from the report header."""
        metadata = {}

        for line in content.split("\n")[:20]:
            if line.startswith("# Task:"):
                metadata["task_id"] = line.replace("# Task:", "").strip()
            elif line.startswith("- Created:"):
                metadata["timestamp"] = line.split(":", 1)[1].strip()
            elif line.startswith("- Status:"):
                metadata["status"] = line.split(":", 1)[1].strip()
            elif line.startswith("- Score:"):
                metadata["score"] = line.split(":", 1)[1].strip()

        return metadata

    def _load_chunk(self, content: str, chunk_name: str) -> dict[str, str]:
        """Extract one chunk between its markers."""
        if chunk_name not in self.MARKERS:
            return {}

        start_marker, end_marker = self.MARKERS[chunk_name]
        start_idx = content.find(start_marker)
        end_idx = content.find(end_marker)

        if start_idx == -1 or end_idx == -1:
            return {}

        chunk_content = content[start_idx + len(start_marker) : end_idx].strip()
        return {chunk_name.lower(): chunk_content}

    def _section(self, chunk_name: str, body: str) -> str:
        start_marker, end_marker = self.MARKERS[chunk_name]
        return f"{start_marker}\n{body}\n{end_marker}\n\n"

    def write_session_report(
        self, file_path: Path, task_id: str, session: ConvergenceSession
    ) -> None:
        """Write FINAL.md style report for a completed session.

        Args:
            file_path: Target file path
            task_id: Opaque task identifier
            session: Completed session
        """
        status = "CONVERGED" if session.converged else "EXHAUSTED"
        created = session.started_at.isoformat() if session.started_at else "N/A"
        tokens = session.cumulative_tokens

        header = (
            f"# Task: {task_id}\n\n"
            f"## Metadata\n"
            f"- Created: {created}\n"
            f"- Status: {status}\n"
            f"- Score: {session.convergence_score}\n\n"
        )

        summary = (
            f"**Query**: {session.original_query}\n\n"
            f"- Iterations: {session.iterations}/{session.config.max_iterations}\n"
            f"- Trend: {session.trend}\n"
            f"- Score history: {_format_history(session.score_history)}\n"
            f"- Tokens: {tokens.total_tokens} "
            f"(prompt {tokens.prompt_tokens}, completion {tokens.completion_tokens})\n"
            f"- Estimated cost: ${format_cost(session.estimated_cost)}"
        )

        final = session.final_reply
        gaps = "\n".join(f"- {gap}" for gap in final.open_gaps) or "- None"
        conclusion = f"{final.text}\n\n### Open gaps\n{gaps}"

        full_parts = []
        for turn in session.turns:
            full_parts.append(
                f"### Iteration {turn.iteration} - Party {turn.party.value}\n"
                f"_Role: {turn.party_role}_\n\n"
                f"- Score: {turn.score}\n"
                f"- Continue: {turn.reply.should_continue}\n"
                f"- Missing: [{', '.join(turn.reply.open_gaps)}]\n"
                f"- Confidence: {turn.reply.confidence}\n\n"
                f"{turn.reply.text}"
            )
        full = "\n\n".join(full_parts)

        content = (
            header
            + self._section("SUMMARY", summary)
            + self._section("CONCLUSION", conclusion)
            + self._section("FULL", full)
        )
        file_path.write_text(content, encoding="utf-8")
