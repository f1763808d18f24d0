#!/usr/bin/env python3
"""Seed script for the LuckyPay Dashboard

Generates demo data:
- 10 identities with Nigerian names and phone numbers (profiles follow automatically)
- 1-2 linked bank accounts per identity
- a mix of deposits, withdrawals, transfers and verification payments
- balance adjustments, which the audit trigger records in audit_logs

Run with: python -m dashboard.seed
"""

from decimal import Decimal
import random

from luckypay.schema import PROFILES, TRANSACTIONS
from luckypay.security import identity_context, service_role
from luckypay.system import LuckyPaySystem

DEMO_PASSWORD = "luckypay123"

FIRST_NAMES = [
    'Adaeze', 'Babatunde', 'Chinedu', 'Damilola', 'Emeka', 'Folake', 'Ifeoma',
    'Kelechi', 'Ngozi', 'Olumide', 'Temitope', 'Uche', 'Yetunde', 'Zainab'
]

LAST_NAMES = [
    'Adeyemi', 'Bello', 'Chukwu', 'Eze', 'Ibrahim', 'Nwosu', 'Okafor',
    'Olawale', 'Onyeka', 'Suleiman', 'Usman'
]

BANKS = [
    ('Access Bank', '044'), ('First Bank', '011'), ('GTBank', '058'),
    ('Kuda', '50211'), ('Opay', '999992'), ('Moniepoint', '50515'), ('Zenith Bank', '057')
]

DESCRIPTIONS = [
    'Salary', 'Rent', 'Groceries', 'School fees', 'Airtime top-up',
    'Electricity bill', 'Family support', None
]


def random_amount(low: int, high: int) -> Decimal:
    return Decimal(random.randint(low * 100, high * 100)) / 100


def create_identities(system, count=10):
    """Create demo identities; the provisioning trigger creates each profile"""
    print(f"Creating {count} identities...")
    identities = []
    
    for i in range(count):
        full_name = f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}"
        phone = f"+234{random.choice(['80', '81', '70', '90'])}{random.randint(10000000, 99999999)}"
        try:
            identities.append(system.identity.sign_up(phone, DEMO_PASSWORD, full_name))
        except Exception as e:
            print(f"Error creating identity {i}: {e}")
    
    print(f"Created {len(identities)} identities successfully")
    return identities


def create_bank_accounts(system, identities):
    print("Linking bank accounts...")
    client = system.client()
    created = 0
    
    for identity in identities:
        for n in range(random.randint(1, 2)):
            bank_name, bank_code = random.choice(BANKS)
            client.add_bank_account(
                identity.id,
                account_number=f"{random.randint(10**9, 10**10 - 1)}",
                account_name=identity.full_name or "LuckyPay User",
                bank_name=bank_name,
                bank_code=bank_code,
                is_primary=(n == 0)
            )
            created += 1
    
    print(f"Linked {created} bank accounts")
    return created


def create_transactions(system, identities, per_identity=8):
    """Insert demo transactions as each identity and settle balances"""
    print(f"Creating up to {per_identity} transactions per identity...")
    created = 0
    
    for identity in identities:
        balance_delta = Decimal("0")
        
        with identity_context(identity.id):
            for _ in range(random.randint(3, per_identity)):
                tx_type = random.choices(
                    ['deposit', 'withdrawal', 'transfer'], weights=[50, 20, 30]
                )[0]
                amount = random_amount(500, 50000)
                status = random.choices(['completed', 'pending', 'failed'], weights=[80, 15, 5])[0]
                bank_name, _ = random.choice(BANKS)
                
                system.database.insert(TRANSACTIONS, {
                    "user_id": identity.id,
                    "type": tx_type,
                    "amount": amount,
                    "recipient_account": f"{random.randint(10**9, 10**10 - 1)}",
                    "recipient_name": f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
                    "recipient_bank": bank_name,
                    "status": status,
                    "description": random.choice(DESCRIPTIONS),
                })
                created += 1
                
                if status == 'completed':
                    balance_delta += amount if tx_type == 'deposit' else -amount
        
        if random.random() < 0.3:
            system.client().create_verification_payment(identity.id)
            created += 1
        
        if balance_delta:
            with service_role():
                profile = system.database.select_one(PROFILES, {"id": identity.id})
                new_balance = max(Decimal(profile["balance"]) + balance_delta, Decimal("0"))
                system.database.update(PROFILES, {"id": identity.id}, {"balance": new_balance})
    
    print(f"Created {created} transactions successfully")
    return created


def main():
    """Generate demo data"""
    print("🌱 Seeding LuckyPay demo data")
    print("=" * 50)
    
    system = LuckyPaySystem()
    
    try:
        identities = create_identities(system, 10)
        
        if not identities:
            print("❌ No identities created, aborting seed process")
            return
        
        accounts = create_bank_accounts(system, identities)
        transactions = create_transactions(system, identities)
        
        print("=" * 50)
        print("✅ Demo data generation completed!")
        print(f"📊 Summary:")
        print(f"   • {len(identities)} identities created")
        print(f"   • {accounts} bank accounts linked")
        print(f"   • {transactions} transactions created")
        print("")
        print("🔑 Sign in with any of these phone numbers and the password "
              f"'{DEMO_PASSWORD}':")
        for identity in identities:
            print(f"   • {identity.phone} ({identity.full_name})")
        print("")
        print("🚀 Start the dashboard with:")
        print("   python -m dashboard")
        
    except Exception as e:
        print(f"❌ Error during seeding: {e}")
        import traceback
        traceback.print_exc()
    finally:
        system.close()


if __name__ == "__main__":
    main()
