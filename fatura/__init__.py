"""Invoice, purchase and POS totals, IVA maps and SAF-T export."""
