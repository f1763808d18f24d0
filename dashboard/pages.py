"""Server-rendered HTML pages for the LuckyPay dashboard"""

from html import escape
from typing import List, Optional

from luckypay.client import (
    VERIFICATION_FEE, VERIFICATION_ACCOUNT, VERIFICATION_ACCOUNT_NAME, VERIFICATION_BANK
)
from luckypay.currency import format_currency, mask_amount
from luckypay.models import Profile, Transaction


VERIFICATION_INSTRUCTIONS = (
    f"Pay {format_currency(VERIFICATION_FEE).replace('.00', '')} to Account: {VERIFICATION_ACCOUNT} "
    f"({VERIFICATION_ACCOUNT_NAME} - {VERIFICATION_BANK}) to verify your account and enable withdrawals."
)

NOTICES = {
    "verification_payment": (
        "Verification Payment Required",
        f"Please {VERIFICATION_INSTRUCTIONS[0].lower()}{VERIFICATION_INSTRUCTIONS[1:]}"
    ),
    "signed_out": ("Signed out", "You have been signed out of LuckyPay."),
}

STATUS_CLASSES = {
    "completed": "status-completed",
    "pending": "status-pending",
    "failed": "status-failed",
}

STYLE = """
body { font-family: system-ui, sans-serif; margin: 0; background: #f6f7fb; color: #1f2430; }
header { background: #fff; border-bottom: 1px solid #e3e5ee; padding: 16px 24px;
         display: flex; justify-content: space-between; align-items: center; }
main { max-width: 960px; margin: 0 auto; padding: 24px; }
h1 { color: #4338ca; margin: 0; }
.card { background: #fff; border: 1px solid #e3e5ee; border-radius: 8px; padding: 20px; margin-bottom: 20px; }
.alert { border-color: #fed7aa; background: #fff7ed; }
.balance { font-size: 2.5rem; font-weight: 700; color: #4338ca; margin: 12px 0; }
.badge { display: inline-block; padding: 2px 10px; border-radius: 999px; font-size: 0.8rem; background: #e5e7eb; }
.badge.ok { background: #dcfce7; color: #166534; }
.badge.bad { background: #fee2e2; color: #991b1b; }
.status-completed { background: #dcfce7; color: #166534; }
.status-pending { background: #fef9c3; color: #854d0e; }
.status-failed { background: #fee2e2; color: #991b1b; }
.txn { display: flex; justify-content: space-between; padding: 12px; border: 1px solid #e3e5ee;
       border-radius: 6px; margin-bottom: 8px; }
.txn-type { font-weight: 600; text-transform: capitalize; }
.muted { color: #6b7280; font-size: 0.9rem; }
.toast { position: fixed; right: 24px; bottom: 24px; max-width: 360px; padding: 16px;
         border-radius: 8px; background: #fff; border: 1px solid #e3e5ee; box-shadow: 0 4px 12px rgba(0,0,0,.1); }
.toast.destructive { background: #fee2e2; border-color: #fca5a5; }
button, .button { background: #4338ca; color: #fff; border: 0; border-radius: 6px; padding: 8px 16px;
                  cursor: pointer; text-decoration: none; font-size: 0.95rem; }
button.secondary { background: #fff; color: #1f2430; border: 1px solid #d1d5db; }
button[disabled] { opacity: .5; cursor: not-allowed; }
input { display: block; width: 100%; padding: 8px; margin: 6px 0 12px; box-sizing: border-box; }
.grid { display: grid; grid-template-columns: 1fr 1fr; gap: 20px; }
"""


def _page(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html>\n"
        "<html lang=\"en\">\n"
        "<head>\n"
        "<meta charset=\"utf-8\">\n"
        "<meta name=\"viewport\" content=\"width=device-width, initial-scale=1\">\n"
        f"<title>{escape(title)}</title>\n"
        f"<style>{STYLE}</style>\n"
        "</head>\n"
        f"<body>\n{body}\n</body>\n"
        "</html>\n"
    )


def _toast(title: str, description: str, destructive: bool = False) -> str:
    css = "toast destructive" if destructive else "toast"
    return (
        f'<div class="{css}" role="status">'
        f'<strong>{escape(title)}</strong>'
        f'<p>{escape(description)}</p>'
        f'</div>'
    )


def render_toast(notice: Optional[str] = None, error: Optional[str] = None) -> str:
    if error:
        return _toast("Error", error, destructive=True)
    if notice in NOTICES:
        title, description = NOTICES[notice]
        return _toast(title, description)
    return ""


AUTH_SCRIPT = """
async function submitAuth(event, path) {
  event.preventDefault();
  const form = event.target;
  const payload = Object.fromEntries(new FormData(form).entries());
  const response = await fetch(path, {
    method: 'POST',
    headers: {'Content-Type': 'application/json'},
    credentials: 'same-origin',
    body: JSON.stringify(payload)
  });
  const data = await response.json();
  if (!response.ok) {
    form.querySelector('.form-error').textContent = data.detail || 'Request failed';
    return;
  }
  if (path === '/auth/signup') {
    await fetch('/auth/login', {
      method: 'POST',
      headers: {'Content-Type': 'application/json'},
      credentials: 'same-origin',
      body: JSON.stringify({phone: payload.phone, password: payload.password})
    });
  }
  window.location = '/dashboard';
}
"""


def render_landing(notice: Optional[str] = None, error: Optional[str] = None) -> str:
    """Public marketing page with sign-up and sign-in forms"""
    body = f"""
<header>
  <h1>LuckyPay</h1>
  <a class="button" href="#get-started">Get Started</a>
</header>
<main>
  <section class="card">
    <h2>Banking made simple, secure and fast</h2>
    <p>Send money, link your bank accounts and track every naira from one dashboard.
       New accounts start with a {escape(format_currency("100000"))} welcome balance.</p>
  </section>
  <section class="card">
    <h2>Why Choose LuckyPay?</h2>
    <p class="muted">Experience the future of digital banking</p>
    <ul>
      <li>Mobile first: sign up with just your phone number</li>
      <li>Secure: every record is visible only to its owner</li>
      <li>Instant: see your latest activity as it happens</li>
    </ul>
  </section>
  <section class="card">
    <h2>Get Started in 3 Easy Steps</h2>
    <ol>
      <li><strong>Create Account</strong>: sign up with your phone number</li>
      <li><strong>Verify Account</strong>: complete the one-time verification payment</li>
      <li><strong>Start Banking</strong>: transfer, withdraw and track your money</li>
    </ol>
  </section>
  <section id="get-started" class="grid">
    <form class="card" onsubmit="submitAuth(event, '/auth/signup')">
      <h3>Create Account</h3>
      <label>Full name<input name="full_name" autocomplete="name"></label>
      <label>Phone number<input name="phone" type="tel" required></label>
      <label>Password<input name="password" type="password" required></label>
      <p class="form-error muted"></p>
      <button type="submit">Sign Up</button>
    </form>
    <form class="card" onsubmit="submitAuth(event, '/auth/login')">
      <h3>Sign In</h3>
      <label>Phone number<input name="phone" type="tel" required></label>
      <label>Password<input name="password" type="password" required></label>
      <p class="form-error muted"></p>
      <button type="submit">Sign In</button>
    </form>
  </section>
</main>
{render_toast(notice, error)}
<script>{AUTH_SCRIPT}</script>
"""
    return _page("LuckyPay - Digital Banking", body)


def _transaction_row(transaction: Transaction) -> str:
    sign = "+" if transaction.is_credit else "-"
    status = transaction.status.value if transaction.status else ""
    return (
        f'<div class="txn">'
        f'<div>'
        f'<p class="txn-type">{escape(transaction.type.value.replace("_", " ", 1))}</p>'
        f'<p class="muted">{escape(transaction.label)}</p>'
        f'</div>'
        f'<div>'
        f'<p class="txn-amount">{sign}{escape(format_currency(transaction.amount))}</p>'
        f'<span class="badge {STATUS_CLASSES.get(status, "")}">{escape(status)}</span>'
        f'</div>'
        f'</div>'
    )


def render_dashboard(
    profile: Optional[Profile],
    transactions: List[Transaction],
    hide_balance: bool = False,
    notice: Optional[str] = None,
    error: Optional[str] = None
) -> str:
    """Signed-in home: balance, verification state and recent activity"""
    toast = render_toast(notice, error)
    
    if profile is None:
        return _page("LuckyPay - Dashboard", f"<main><p>Loading your account...</p></main>{toast}")
    
    balance = mask_amount() if hide_balance else format_currency(profile.balance)
    toggle_href = "/dashboard" if hide_balance else "/dashboard?hide_balance=1"
    toggle_label = "Show balance" if hide_balance else "Hide balance"
    
    verified = (
        '<span class="badge ok">Verified</span>' if profile.is_verified
        else '<span class="badge">Unverified</span>'
    )
    withdrawals = (
        '<span class="badge ok">Withdrawals Enabled</span>' if profile.has_paid_verification
        else '<span class="badge bad">Withdrawals Disabled</span>'
    )
    
    alert = ""
    if not profile.has_paid_verification:
        alert = f"""
  <section class="card alert">
    <h3>Account Verification Required</h3>
    <p>{escape(VERIFICATION_INSTRUCTIONS)}</p>
    <form method="post" action="/dashboard/verification-payment">
      <button type="submit">Pay Now</button>
    </form>
  </section>"""
    
    if transactions:
        history = "\n".join(_transaction_row(t) for t in transactions)
    else:
        history = (
            '<p>No transactions yet</p>'
            '<p class="muted">Your transaction history will appear here</p>'
        )
    
    withdraw_disabled = "" if profile.has_paid_verification else " disabled"
    
    body = f"""
<header>
  <div>
    <h1>LuckyPay</h1>
    <p class="muted">Welcome back, {escape(profile.full_name or 'User')}</p>
  </div>
  <form method="post" action="/auth/logout">
    <button class="secondary" type="submit">Sign Out</button>
  </form>
</header>
<main>{alert}
  <div class="grid">
    <section class="card">
      <h3>Account Balance</h3>
      <p class="muted">Your current available balance</p>
      <div class="balance">{escape(balance)}</div>
      <a href="{toggle_href}">{toggle_label}</a>
      <p>{verified} {withdrawals}</p>
    </section>
    <section class="card">
      <h3>Quick Actions</h3>
      <p><button class="secondary" type="button">Transfer Money</button></p>
      <p><button class="secondary" type="button"{withdraw_disabled}>Withdraw Funds</button></p>
      <p><button class="secondary" type="button">Generate Receipt</button></p>
    </section>
  </div>
  <section class="card">
    <h3>Recent Transactions</h3>
    <p class="muted">Your latest account activity</p>
    {history}
  </section>
</main>
{toast}
"""
    return _page("LuckyPay - Dashboard", body)
