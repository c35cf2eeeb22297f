"""
VAST Sync — workbook reconciliation for the VAST sales dashboard.

Reads the hand-maintained sales workbook (stores, promoters, daily sales and
credit applications) and reconciles it into the relational store behind the
dashboard: stores and promoters are upserted, promoters receive employee ids
and PIN logins under their area supervisor, and daily sales are written to
one of two fact tables split at the cutover date.

To re-home a date range after a manual fix in the workbook:
    Run ``python main.py import-window --start ... --end ...``. The window is
    deleted from both fact tables and replayed from the workbook into the
    table it belongs to, then the seam between the tables is verified.

To move the cutover:
    Change config.CUTOVER_DATE, then re-import the windows on either side of
    the old and new seam. ``python main.py verify`` reports any row left on
    the wrong side.

To add an area:
    Add it to config.AREAS, EMPLOYEE_ID_PREFIXES, SPV_MAPPING and
    AREA_MANAGERS, and give normalizers.AREA_RULES a rule that recognises its
    store labels.
"""
