#!/usr/bin/env python3
"""
Generate API keys for portal users.
Creates secure random API keys that can be inserted into the portal_users table.
"""

import secrets
import string


def generate_api_key(prefix="vis", length=32):
    """Generate a secure random API key."""
    chars = string.ascii_letters + string.digits
    random_part = ''.join(secrets.choice(chars) for _ in range(length))
    return f"{prefix}_{random_part}"


if __name__ == "__main__":
    print("=" * 70)
    print("Visibility API Key Generator")
    print("=" * 70)
    print()

    staff_key = generate_api_key()
    reviewer_key = generate_api_key()
    admin_key = generate_api_key()

    print("-- Municipality staff (geographic visibility via user_visibility_scopes):")
    print(f"""
INSERT INTO portal_users (id, display_name, api_key, is_active)
VALUES ('u-staff', 'Riyadh Staff', '{staff_key}', TRUE);
INSERT INTO user_roles (user_id, role) VALUES ('u-staff', 'municipality_staff');
INSERT INTO user_visibility_scopes (user_id, is_national, sector_ids, home_municipality_id)
VALUES ('u-staff', FALSE, '[]', '<municipality id>');
""")

    print("-- Deputyship reviewer (sectoral visibility):")
    print(f"""
INSERT INTO portal_users (id, display_name, api_key, is_active)
VALUES ('u-reviewer', 'Deputyship Reviewer', '{reviewer_key}', TRUE);
INSERT INTO user_roles (user_id, role) VALUES ('u-reviewer', 'deputyship_staff');
INSERT INTO user_visibility_scopes (user_id, is_national, sector_ids, home_municipality_id)
VALUES ('u-reviewer', TRUE, '["<sector id>"]', NULL);
""")

    print("-- Admin (global visibility):")
    print(f"""
INSERT INTO portal_users (id, display_name, api_key, is_active)
VALUES ('u-admin', 'System Admin', '{admin_key}', TRUE);
INSERT INTO user_roles (user_id, role) VALUES ('u-admin', 'admin');
""")

    print("=" * 70)
    print("Note: Run these SQL statements in your database to create users.")
    print("=" * 70)
