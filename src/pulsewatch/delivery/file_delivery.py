"""
File delivery channel
"""
import json
from pathlib import Path
from typing import Any, Dict, List

from pulsewatch.core.entities import Alert
from pulsewatch.delivery.base import DeliveryChannel


def alert_to_dict(alert: Alert) -> Dict[str, Any]:
    return {
        "company_id": alert.company_id,
        "company_name": alert.company_name,
        "bucket": alert.bucket.value,
        "chip": alert.chip,
        "tier": alert.tier,
        "title": alert.title,
        "url": alert.url,
        "observed_at": alert.observed_at.isoformat(),
        "rule": alert.rule,
        "item_id": alert.item_id,
        "raw_content_id": alert.raw_content_id,
        "source_key": alert.source_key,
        "context": alert.context,
    }


class FileDelivery(DeliveryChannel):
    name = "file"

    def __init__(self, output_dir: str = "output"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    async def deliver(
        self,
        *,
        run_date: str,
        alerts: List[Alert],
    ) -> None:
        base = self.output_dir / f"pulse_{run_date}"

        json_path = base.with_suffix(".json")
        md_path = base.with_suffix(".md")

        json_path.write_text(
            json.dumps(
                [alert_to_dict(alert) for alert in alerts],
                indent=2,
                default=str,
            ),
            encoding="utf-8",
        )

        md_lines = list[str]([f"# Pulse alerts {run_date}", ""])
        for tier in (1, 2, 3):
            tier_alerts = [alert for alert in alerts if alert.tier == tier]
            if not tier_alerts:
                continue
            md_lines.append(f"## Tier {tier}")
            md_lines.append("")
            for alert in tier_alerts:
                md_lines.append(f"### {alert.company_name}: {alert.title}")
                md_lines.append(f"**Bucket:** {alert.bucket.value} | **Chip:** {alert.chip} | **Rule:** {alert.rule}")
                if alert.url:
                    md_lines.append(f"- {alert.url}")
                md_lines.append("")

        md_path.write_text("\n".join(md_lines), encoding="utf-8")
