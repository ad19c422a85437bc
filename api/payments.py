from datetime import datetime, timedelta
from flask import Blueprint, current_app, request, jsonify
from models import User, CoinPackage, Transaction, db
from models.Transaction import TRANSACTION_TYPES, TRANSACTION_STATUSES
from helpers import get_current_user, is_authenticated, is_admin, request_data
import stripe

bp = Blueprint('payments', __name__)

def credit_coins(user, coins, item_id=None, item_type=None):
    """Add purchased coins to a wallet and record the COIN_PURCHASE transaction."""
    user.wallet_coins = (user.wallet_coins or 0) + coins
    transaction = Transaction(user_id=user.id, amount=coins, type="COIN_PURCHASE",
                              item_id=str(item_id) if item_id is not None else None, item_type=item_type)
    db.session.add(transaction)
    return transaction

@bp.route('/api/payments', methods=["POST"])
@is_authenticated
def record_payment():
    """
    Records a payment in the current user's transaction history.

    Expects ``amount`` (a positive integer), ``payment_type`` (COIN_PURCHASE,
    CHAPTER_PURCHASE or PREMIUM_SUBSCRIPTION), an optional ``status``
    (PENDING, COMPLETED or FAILED, default COMPLETED) and optional
    ``item_id`` and ``item_type``. Only a completed COIN_PURCHASE recorded
    by an admin credits the wallet; readers get coins through the Stripe
    webhook.

    Returns:
        Response: 201 with the transaction, or 400 on an invalid amount, type or status.
    """
    user = get_current_user()
    data = request_data()
    try:
        amount = int(data.get("amount"))
    except (TypeError, ValueError):
        amount = 0
    if amount < 1:
        return jsonify({"error": "Invalid payment amount"}), 400
    payment_type = data.get("payment_type")
    if payment_type not in TRANSACTION_TYPES:
        return jsonify({"error": f"Payment type must be one of {', '.join(TRANSACTION_TYPES)}"}), 400
    status = data.get("status") or "COMPLETED"
    if status not in TRANSACTION_STATUSES:
        return jsonify({"error": f"Status must be one of {', '.join(TRANSACTION_STATUSES)}"}), 400
    item_id = data.get("item_id")
    item_type = data.get("item_type")

    if payment_type == "COIN_PURCHASE" and status == "COMPLETED" and user.is_admin:
        transaction = credit_coins(user, amount, item_id=item_id, item_type=item_type)
    else:
        transaction = Transaction(user_id=user.id, amount=amount, type=payment_type, status=status,
                                  item_id=str(item_id) if item_id is not None else None, item_type=item_type)
        db.session.add(transaction)
    db.session.commit()
    return jsonify({
        "success": True,
        "transaction": transaction.to_dict(),
        "wallet_coins": user.wallet_coins or 0,
        "message": "Payment recorded"
    }), 201

@bp.route('/api/payments', methods=["GET"])
@is_authenticated
def payment_history():
    user = get_current_user()
    transactions = Transaction.query.filter_by(user_id=user.id)\
        .order_by(Transaction.created_at.desc(), Transaction.id.desc()).all()
    return jsonify({"transactions": [t.to_dict() for t in transactions], "wallet_coins": user.wallet_coins or 0})

@bp.route('/api/coin-packages', methods=["GET"])
def coin_packages():
    packages = CoinPackage.query.order_by(CoinPackage.coins.asc()).all()
    return jsonify({
        "packages": [package.to_dict() for package in packages],
        "stripe_key": current_app.config.get("STRIPE_PUBLISHABLE_KEY"),
    })

@bp.route('/api/coin-packages', methods=["POST"])
@is_admin
def create_coin_package():
    """
    Creates a coin package and its Stripe price.

    Expects ``coins`` (positive integer) and ``cost`` (in dollars). If Stripe
    refuses the price the package is removed again.

    Returns:
        Response: 201 with the package, 400 on invalid or duplicate input,
        502 if the Stripe price could not be created.
    """
    data = request_data()
    try:
        coins = int(data.get("coins"))
        cost = float(data.get("cost"))
    except (TypeError, ValueError):
        return jsonify({"error": "Coins and cost are required"}), 400
    if coins < 1 or cost <= 0:
        return jsonify({"error": "Coins and cost must be positive"}), 400
    if CoinPackage.query.filter_by(coins=coins).first():
        return jsonify({"error": "Coin package already exists."}), 400

    package = CoinPackage(coins=coins, cost=cost)
    db.session.add(package)
    db.session.commit()

    try:
        stripe_price = stripe.Price.create(
            unit_amount=int(round(cost * 100)),
            currency="usd",
            product_data={"name": f"{coins} Coins Package"}
        )
    except stripe.StripeError as e:
        current_app.logger.error(f"Stripe price creation failed for {coins} coins: {e}")
        db.session.delete(package)
        db.session.commit()
        return jsonify({"error": "Payment provider error"}), 502
    package.stripe_price_id = stripe_price.id
    db.session.commit()
    return jsonify({"package": package.to_dict()}), 201

@bp.route('/api/coin-packages/<int:package_id>', methods=["DELETE"])
@is_admin
def delete_coin_package(package_id):
    """
    Deletes a coin package and deactivates its Stripe product.
    """
    package = CoinPackage.query.get_or_404(package_id, description="Coin package not found")
    if package.stripe_price_id:
        try:
            stripe_price = stripe.Price.retrieve(package.stripe_price_id)
            stripe.Product.modify(stripe_price.product, active=False)
        except stripe.StripeError as e:
            current_app.logger.warning(f"Could not deactivate Stripe product for package {package.id}: {e}")
    db.session.delete(package)
    db.session.commit()
    return jsonify({"message": "Coin package deleted"})

@bp.route('/api/payments/checkout/<int:package_id>', methods=["POST"])
@is_authenticated
def create_checkout_session(package_id):
    """
    Creates a Stripe Checkout session for a coin package.

    A Stripe customer is created for the user on first use. The package and
    user ids travel in the session metadata and are read back by the webhook.

    Args:
        package_id (int): The ID of the coin package being bought.

    Returns:
        Response: JSON with the session id and URL, or a 502 error if Stripe rejects the request.
    """
    user = get_current_user()
    package = CoinPackage.query.get_or_404(package_id, description="Coin package not found")
    return_url = request.host_url.rstrip('/') + "/api/payments"

    try:
        if not user.stripe_customer_id:
            customer = stripe.Customer.create(
                email=user.email,
                name=user.username,
                metadata={"user_id": user.id}
            )
            user.stripe_customer_id = customer.id
            db.session.commit()

        session = stripe.checkout.Session.create(
            payment_method_types=['card'],
            mode='payment',
            customer=user.stripe_customer_id,
            line_items=[{
                'price': package.stripe_price_id,
                'quantity': 1,
            }],
            metadata={
                'user_id': user.id,
                'package_id': package.id,
            },
            success_url=return_url,
            cancel_url=return_url,
        )
    except stripe.StripeError as e:
        current_app.logger.error(f"Stripe checkout failed for user {user.id}: {e}")
        return jsonify({"error": "Payment provider error"}), 502
    return jsonify({"id": session.id, "url": session.url})

@bp.route('/api/stripe/webhook', methods=['POST'])
def stripe_webhook():
    """
    Handles incoming Stripe webhook events.

    ``checkout.session.completed`` events carrying coin package metadata
    credit the package's coins to the buyer's wallet, once per checkout
    session: Stripe may deliver the same event again. Other events are
    acknowledged and ignored.

    Returns:
        tuple: An empty 200 response, or 400 for a bad payload or signature.
    """
    payload = request.data
    sig_header = request.headers.get('Stripe-Signature')
    webhook_secret = current_app.config.get('STRIPE_WEBHOOK_SECRET')

    try:
        event = stripe.Webhook.construct_event(
            payload, sig_header, webhook_secret
        )
    except ValueError:
        return "Invalid payload", 400
    except stripe.SignatureVerificationError:
        return "Invalid signature", 400

    if event['type'] == 'checkout.session.completed':
        session = event['data']['object']
        metadata = session.get('metadata') or {}
        user_id = metadata.get('user_id')
        package_id = metadata.get('package_id')
        if user_id and package_id:
            user = User.query.get(int(user_id))
            package = CoinPackage.query.get(int(package_id))
            already_credited = Transaction.query.filter_by(
                item_type="stripe_checkout", item_id=str(session.get('id'))
            ).first()
            if already_credited:
                current_app.logger.info(f"Checkout session {session.get('id')} already credited, skipping.")
            elif user and package:
                credit_coins(user, package.coins, item_id=session.get('id'), item_type="stripe_checkout")
                db.session.commit()
                current_app.logger.info(f"Credited {package.coins} coins to user {user.id}.")
            else:
                current_app.logger.warning(f"Checkout completed for unknown user {user_id} or package {package_id}.")
    return "", 200

@bp.route('/api/premium/subscribe', methods=["POST"])
@is_authenticated
def subscribe_premium():
    """
    Buy a premium period with wallet coins.

    The period is ``PREMIUM_DAYS`` long and starts at the current expiry when
    the subscription is still active, otherwise now.

    Returns:
        Response: 201 with the new expiry and balance, or 402 if the wallet is short.
    """
    user = get_current_user()
    cost = current_app.config.get("PREMIUM_COINS_COST")
    if (user.wallet_coins or 0) < cost:
        return jsonify({"error": "Not enough coins", "wallet_coins": user.wallet_coins or 0, "coins_cost": cost}), 402

    now = datetime.utcnow()
    start = user.premium_until if user.premium_until and user.premium_until > now else now
    user.premium_until = start + timedelta(days=current_app.config.get("PREMIUM_DAYS"))
    user.wallet_coins = user.wallet_coins - cost
    transaction = Transaction(user_id=user.id, amount=cost, type="PREMIUM_SUBSCRIPTION", item_type="premium")
    db.session.add(transaction)
    db.session.commit()
    return jsonify({
        "premium_until": user.premium_until.isoformat(),
        "wallet_coins": user.wallet_coins,
        "transaction": transaction.to_dict(),
    }), 201
