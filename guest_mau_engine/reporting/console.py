"""
Console summary: the end-of-run narration printed by the CLI.
Warnings are held back and printed in their own section at the end.
"""

from __future__ import annotations

from ..analysis.models import MauReport


def print_summary(report: MauReport) -> None:
    sign_in = report.sign_in
    total_users = "unknown" if report.total_users is None else report.total_users

    print(f"  Tenant:               {report.tenant_name}")
    print(f"  Period start:         {report.period_start:%Y-%m-%d %H:%M} UTC")
    print(f"  API surface:          {report.surface or 'n/a'}")
    print(f"  Total users:          {total_users}")
    print(f"  Guest accounts:       {report.guest_count}")
    print()
    print(f"  Signed in this period:  {len(sign_in.this_period)}")
    print(f"  Signed in before:       {len(sign_in.before)}")
    print(f"  Never signed in:        {len(sign_in.never)}")
    print(f"  With sign-in data:      {sign_in.with_sign_in_data}")
    print()
    for key, count in report.aggregate.per_feature_counts.items():
        name = report.feature_names.get(key, key)
        print(f"    {name:40s} {count:6d} billable guest(s)")
    print(f"    {'Distinct across features':40s} {report.billable_count:6d}")
    print(f"\n  Engagement rate:      {report.engagement_rate:.1%}")


def print_warnings(report: MauReport) -> None:
    if not report.issues:
        print("  No warnings. Analysis completed without caveats.")
        return

    print(f"  Analysis completed with {len(report.issues)} warning(s):")
    for category, issues in report.issues_by_category().items():
        print(f"\n  [{report.feature_names.get(category, category)}]")
        for issue in issues:
            print(f"    ⚠  ({issue.kind}) {issue.message}")
