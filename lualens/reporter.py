"""
This generates analysis reports: plain text, JSON, and HTML through Jinja2.
The HTML template lives in the package's "templates" folder.
"""

import html
import json
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List

from jinja2 import Environment, FileSystemLoader, select_autoescape

from lualens.models import SEVERITIES, Finding

MARKERS = {'error': '[E]', 'warning': '[W]', 'info': '[I]'}


def highlight_code_match(line_content: str, finding: Finding) -> str:
    """Add HTML highlighting to the identifier a finding is about."""
    if not line_content:
        return ""
    escaped = html.escape(line_content)
    match_text = finding.details.get('name')
    if match_text:
        escaped_match = html.escape(match_text)
        if escaped_match in escaped:
            highlighted = f'<span class="highlight">{escaped_match}</span>'
            escaped = escaped.replace(escaped_match, highlighted, 1)
    return escaped


def get_templates_dir() -> Path:
    """Get path to templates directory."""
    return Path(__file__).parent / "templates"


class Reporter:
    """Collects findings and generates reports."""

    def __init__(self):
        # group name -> file_path -> list of findings
        self.findings: Dict[str, Dict[str, List[Finding]]] = defaultdict(lambda: defaultdict(list))
        self._jinja_env = Environment(
            loader=FileSystemLoader(str(get_templates_dir())),
            autoescape=select_autoescape(['html', 'xml'])
        )
        self._jinja_env.filters['basename'] = lambda p: Path(p).name

    def add_finding(self, group: str, file_path: Path, finding: Finding):
        """Add a finding to the report."""
        self.findings[group][str(file_path)].append(finding)

    def add_findings(self, group: str, file_path: Path, findings: List[Finding]):
        for finding in findings:
            self.add_finding(group, file_path, finding)

    @property
    def all_findings(self) -> List[Finding]:
        """Get flat list of all findings."""
        result = []
        for group in self.findings.values():
            for file_findings in group.values():
                result.extend(file_findings)
        return result

    def count_by_severity(self, severity: str) -> int:
        """Count total findings of a specific severity."""
        return sum(1 for f in self.all_findings if f.severity == severity)

    def total_findings(self) -> int:
        """Total number of findings."""
        return sum(
            len(findings)
            for group in self.findings.values()
            for findings in group.values()
        )

    def get_top_issues(self, limit: int = 10) -> List[tuple]:
        """Get top issues by pattern count with their severity."""
        pattern_counts = defaultdict(int)
        pattern_severity = {}
        for f in self.all_findings:
            pattern_counts[f.pattern_name] += 1
            pattern_severity.setdefault(f.pattern_name, f.severity)

        return [
            (pattern, count, pattern_severity[pattern])
            for pattern, count in sorted(pattern_counts.items(), key=lambda x: (-x[1], x[0]))[:limit]
        ]

    def get_group_severity_breakdown(self, group: str) -> dict:
        """Get severity breakdown for one group of files."""
        counts = {severity: 0 for severity in SEVERITIES}
        for file_findings in self.findings.get(group, {}).values():
            for f in file_findings:
                if f.severity in counts:
                    counts[f.severity] += 1
        return counts

    def _summary(self) -> dict:
        summary = {severity: self.count_by_severity(severity) for severity in SEVERITIES}
        summary['total'] = self.total_findings()
        return summary

    def print_summary(self):
        """Print a summary to stdout."""
        print("\n" + "=" * 60)
        print("ANALYSIS SUMMARY")
        print("=" * 60)

        summary = self._summary()
        print(f"\n  ERROR:    {summary['error']:5d}")
        print(f"  WARNING:  {summary['warning']:5d}")
        print(f"  INFO:     {summary['info']:5d}")
        print(f"  {'-' * 16}")
        print(f"  TOTAL:    {summary['total']:5d}")

        top_issues = self.get_top_issues()
        if top_issues:
            print("\nTop issues by type:")
            for pattern, count, severity in top_issues:
                print(f"  {MARKERS.get(severity, '[ ]')} {pattern}: {count}")

    def print_detailed(self):
        """Print every finding, one line each, grouped by file."""
        for group, files in sorted(self.findings.items()):
            for file_path, findings in sorted(files.items()):
                for f in sorted(findings, key=lambda x: (x.line_num, x.column)):
                    print(f"{file_path}:{f.line_num}:{f.column}: {f.severity}: {f.message} [{f.pattern_name}]")

    def save(self, path: Path, verbose: bool = False):
        """Save report to file (txt, html, or json)."""
        suffix = path.suffix.lower()

        if suffix == '.json':
            self._save_json(path, verbose)
        elif suffix == '.html':
            self._save_html(path, verbose)
        else:
            self._save_txt(path, verbose)

    def _get_template_data(self) -> dict:
        """Prepare data for template rendering."""
        findings_data = {}
        group_breakdowns = {}
        pattern_counts = defaultdict(int)

        for group, files in sorted(self.findings.items()):
            findings_data[group] = {}
            group_breakdowns[group] = self.get_group_severity_breakdown(group)

            for file_path, file_findings in sorted(files.items()):
                findings_data[group][file_path] = []
                for f in sorted(file_findings, key=lambda x: (x.line_num, x.column)):
                    findings_data[group][file_path].append({
                        'line_num': f.line_num,
                        'column': f.column,
                        'line_content': highlight_code_match(f.line_content, f),
                        'pattern': f.pattern_name,
                        'severity': f.severity,
                        'description': f.description,
                    })
                    pattern_counts[f.pattern_name] += 1

        return {
            'generated': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
            'summary': self._summary(),
            'patterns': sorted(pattern_counts.items(), key=lambda x: x[0].lower()),
            'top_issues': self.get_top_issues(),
            'findings': findings_data,
            'group_breakdowns': group_breakdowns,
        }

    def _sanitize_details(self, details: dict) -> dict:
        """Convert any non-serializable objects in details to strings."""
        result = {}
        for key, value in (details or {}).items():
            if isinstance(value, (str, int, float, bool, type(None))):
                result[key] = value
            elif isinstance(value, (list, tuple)):
                result[key] = [v if isinstance(v, (str, int, float, bool, type(None))) else str(v) for v in value]
            elif isinstance(value, dict):
                result[key] = self._sanitize_details(value)
            else:
                result[key] = str(value)
        return result

    def _save_json(self, path: Path, verbose: bool = False):
        """Save as JSON."""
        if verbose:
            print("  Preparing JSON data...", end="", flush=True)

        data = {
            'generated': datetime.now().isoformat(),
            'summary': self._summary(),
            'findings': {}
        }
        for group, files in self.findings.items():
            data['findings'][group] = {}
            for file_path, findings in files.items():
                data['findings'][group][file_path] = [
                    {
                        'line': f.line_num,
                        'column': f.column,
                        'pattern': f.pattern_name,
                        'severity': f.severity,
                        'description': f.description,
                        'details': self._sanitize_details(f.details)
                    }
                    for f in findings
                ]

        path.write_text(json.dumps(data, indent=2, default=str), encoding='utf-8')

        if verbose:
            print("\r  Done.                        ")

    def _save_txt(self, path: Path, verbose: bool = False):
        """Save as plain text."""
        if verbose:
            print("  Generating text report...", end="", flush=True)

        summary = self._summary()
        lines = []
        lines.append("Lua Static Analysis Report")
        lines.append(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        lines.append("=" * 60)
        lines.append("")

        lines.append("SUMMARY")
        lines.append("-" * 40)
        lines.append(f"ERROR:   {summary['error']}")
        lines.append(f"WARNING: {summary['warning']}")
        lines.append(f"INFO:    {summary['info']}")
        lines.append(f"TOTAL: {summary['total']}")
        lines.append("")

        lines.append("DETAILED FINDINGS")
        lines.append("=" * 60)

        for group, files in sorted(self.findings.items()):
            lines.append("")
            lines.append(f"GROUP: {group}")
            lines.append("-" * 40)

            for file_path, findings in sorted(files.items()):
                lines.append(f"  {Path(file_path).name}:")
                for f in sorted(findings, key=lambda x: (x.line_num, x.column)):
                    lines.append(f"    [{f.severity}] L{f.line_num}:{f.column}: {f.pattern_name}")
                    lines.append(f"           {f.description}")

        path.write_text('\n'.join(lines), encoding='utf-8')

        if verbose:
            print("\r  Done.                        ")

    def _save_html(self, path: Path, verbose: bool = False):
        """Save as HTML report rendered from templates/report.html."""
        if verbose:
            print("  Rendering template...", end="", flush=True)

        template = self._jinja_env.get_template('report.html')
        path.write_text(template.render(**self._get_template_data()), encoding='utf-8')

        if verbose:
            print("\r  Done.                        ")
