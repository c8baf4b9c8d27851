"""
Services layer - report lifecycle logic lives here, routes stay thin.

DESIGN PRINCIPLE:
- The report store is the only place report state is kept in memory
- Status rules live in the workflow engine, nowhere else
- Views are derived from the store on demand, never cached
- Sessions carry the acting identity into every mutation
"""
