"""
Scheduling Domain

Turns a barber's weekly template, exceptional days and manual blocks into
bookable start times.

- resolver.py   open intervals for (barber, date); exceptional days replace the weekly template
- slots.py      grid walk over the open intervals minus bookings and blocks
- service.py    admin operations on weekly shifts, exceptional days and blocks
- router.py     public availability endpoint and admin schedule endpoints

Reads here take no locks. A reservation re-checks the slot atomically in the
bookings ledger, so stale availability only affects what the UI suggests.
"""
