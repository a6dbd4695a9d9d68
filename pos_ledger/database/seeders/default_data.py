from ...constants import SALES_REP_ROLE

WALK_IN_CUSTOMER = "Walk-in Customer"


def seed(conn):
    # a walk-in customer and a default sales rep so the counter works on a fresh DB
    row = conn.execute("SELECT COUNT(*) AS n FROM customers").fetchone()
    if row and row["n"] == 0:
        conn.execute(
            "INSERT INTO customers(name, contact_info, address) VALUES (?, ?, ?)",
            (WALK_IN_CUSTOMER, "", None),
        )
    row = conn.execute("SELECT COUNT(*) AS n FROM users WHERE role = ?", (SALES_REP_ROLE,)).fetchone()
    if row and row["n"] == 0:
        conn.execute(
            "INSERT INTO users(username, full_name, role, is_active) VALUES (?, ?, ?, 1)",
            ("counter", "Counter Sales", SALES_REP_ROLE),
        )
    conn.commit()
