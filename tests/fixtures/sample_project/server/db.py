from supabase import create_client

supabase = create_client("https://example.supabase.co", "anon-key")


def load_invoices(customer_id):
    return supabase.table("invoices").select("*").eq("customer_id", customer_id).execute()
